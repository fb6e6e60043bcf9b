import re
import logging
from typing import Dict, List, Optional, Tuple

from rapidfuzz import fuzz

from schema import UNCATEGORIZED, Direction

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_KEYWORDS = {
    'Salary': ['salary', 'payroll', 'sal credit'],
    'Refunds': ['refund', 'cashback', 'reversal'],
    'Interest': ['interest', 'int.pd', 'dividend'],
    'Food': ['swiggy', 'zomato', 'restaurant', 'cafe', 'dominos', 'pizza', 'mcdonald', 'starbucks'],
    'Software': ['aws', 'google workspace', 'gsuite', 'slack', 'figma', 'github', 'notion', 'adobe', 'microsoft'],
    'Utilities': ['electricity', 'bescom', 'broadband', 'airtel', 'jio', 'recharge', 'water bill'],
    'Travel': ['uber', 'ola', 'irctc', 'makemytrip', 'indigo', 'air india', 'fuel', 'petrol'],
    'Rent': ['rent', 'lease'],
    'Taxes': ['gst', 'tds', 'income tax', 'advance tax'],
    'Employees': ['payout', 'stipend', 'contractor'],
    'Transfers': ['neft', 'imps', 'rtgs', 'transfer'],
}

# Categories that only make sense for money coming in
INFLOW_CATEGORIES = {'Salary', 'Refunds', 'Interest'}


class TransactionCategorizer:
    """Suggests a category from a transaction description using keyword and fuzzy matching."""

    def __init__(
        self,
        category_keywords: Optional[Dict[str, List[str]]] = None,
        fuzzy_threshold: int = 85,
        min_fuzzy_length: int = 4,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.category_keywords = category_keywords or DEFAULT_CATEGORY_KEYWORDS
        self.fuzzy_threshold = fuzzy_threshold
        self.min_fuzzy_length = min_fuzzy_length

    def categorize(self, description: str, direction: Optional[Direction] = None) -> str:
        """
        Pick a category for one transaction.

        Args:
            description: Raw transaction narration
            direction: When given, inflow-only categories are not offered for outflows

        Returns:
            Category name, or "Uncategorized" when nothing matches
        """
        text = self._normalize(description)
        if not text:
            return UNCATEGORIZED

        candidates = self._candidates(direction)

        for category, keyword in candidates:
            if re.search(rf'\b{re.escape(keyword)}\b', text):
                return category

        # Fuzzy pass compares whole words so "rent" does not match inside "current"
        words = text.split()
        best_category, best_score = UNCATEGORIZED, 0.0
        for category, keyword in candidates:
            if len(keyword) < self.min_fuzzy_length:
                continue
            size = len(keyword.split())
            for i in range(len(words) - size + 1):
                score = fuzz.ratio(keyword, ' '.join(words[i:i + size]))
                if score >= self.fuzzy_threshold and score > best_score:
                    best_category, best_score = category, score

        if best_category != UNCATEGORIZED:
            self.logger.debug(f"Fuzzy match {description!r} -> {best_category} ({best_score:.0f})")
        return best_category

    def _candidates(self, direction: Optional[Direction]) -> List[Tuple[str, str]]:
        pairs = []
        for category, keywords in self.category_keywords.items():
            if direction == Direction.OUTFLOW and category in INFLOW_CATEGORIES:
                continue
            for keyword in keywords:
                pairs.append((category, keyword.lower()))
        return pairs

    def _normalize(self, description: str) -> str:
        """Lowercase and turn separators like / - _ into spaces."""
        text = (description or '').lower()
        text = re.sub(r'[/_\-|]+', ' ', text)
        return re.sub(r'\s+', ' ', text).strip()
