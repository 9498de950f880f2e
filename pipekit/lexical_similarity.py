"""Lexical similarity module for header name matching.

Headers on piping take-offs are short, abbreviated and frequently
misspelled ("Dwg No.", "Comp ID", "Test Pkg", "Matl"). This module
normalizes them into comparable token sets: punctuation stripped,
camelCase split, abbreviations expanded and common misspellings corrected.
"""

import re
from typing import Dict, List, Set, Optional


# Abbreviation dictionary for expansion
ABBREVIATION_DICT = {
    "dwg": "drawing",
    "dwgs": "drawing",
    "drg": "drawing",
    "no": "number",
    "nbr": "number",
    "num": "number",
    "comp": "component",
    "cmpt": "component",
    "id": "identifier",
    "ident": "identifier",
    "typ": "type",
    "cat": "category",
    "desc": "description",
    "descr": "description",
    "sz": "size",
    "dia": "diameter",
    "spec": "specification",
    "specs": "specification",
    "mat": "material",
    "matl": "material",
    "mtl": "material",
    "sys": "system",
    "syst": "system",
    "pkg": "package",
    "pkge": "package",
    "pack": "package",
    "tp": "test package",
    "qty": "quantity",
    "qnty": "quantity",
    "rmk": "remarks",
    "rmks": "remarks",
    "dt": "date",
    "wld": "weld",
}

# Common misspellings dictionary (field crew typos)
COMMON_MISSPELLINGS = {
    "drawng": "drawing",
    "drawign": "drawing",
    "drwaing": "drawing",
    "componet": "component",
    "compnent": "component",
    "componant": "component",
    "identifer": "identifier",
    "identifiar": "identifier",
    "indentifier": "identifier",
    "descripton": "description",
    "descriptin": "description",
    "discription": "description",
    "materail": "material",
    "matrial": "material",
    "sytem": "system",
    "systen": "system",
    "pakage": "package",
    "pacakge": "package",
    "specifcation": "specification",
    "specfication": "specification",
    "quantiy": "quantity",
    "quanity": "quantity",
    "quantitiy": "quantity",
}


class LexicalSimilarity:
    """Lexical similarity calculator for column name matching."""

    def __init__(self):
        """Initialize the lexical similarity calculator."""
        # Build vocabulary from all known column names and aliases
        self.vocabulary: Set[str] = set()
        self._build_vocabulary()
        # Sorted copy so spelling correction is deterministic across runs
        self._sorted_vocabulary: List[str] = sorted(self.vocabulary)

    def _build_vocabulary(self):
        """Build vocabulary from known column names."""
        from .schema import CANONICAL_FIELDS

        for schema in CANONICAL_FIELDS:
            for name in [schema["id"], schema["label"]] + list(schema["aliases"]):
                self.vocabulary.update(self.normalize_text(name).split())

    def normalize_text(self, text: str) -> str:
        """Normalize text: split camelCase, lowercase, strip punctuation, expand tokens.

        Args:
            text: Input text to normalize

        Returns:
            Normalized text string
        """
        if not text:
            return ""

        # Split camelCase and PascalCase before lowercasing
        text = re.sub(r'([a-z])([A-Z])', r'\1 \2', text)
        text = text.lower()

        # "#" in a header means "number"
        text = text.replace('#', ' number ')

        # Replace punctuation and separators with spaces
        text = re.sub(r'[^a-z0-9]+', ' ', text)
        text = re.sub(r'\s+', ' ', text).strip()

        tokens = []
        for token in text.split():
            token = COMMON_MISSPELLINGS.get(token, token)
            tokens.append(ABBREVIATION_DICT.get(token, token))

        return ' '.join(tokens)

    def edit_distance(self, s1: str, s2: str) -> int:
        """Calculate Levenshtein edit distance between two strings.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Edit distance (number of operations needed)
        """
        if not s1:
            return len(s2)
        if not s2:
            return len(s1)

        rows = len(s1) + 1
        cols = len(s2) + 1

        dist = [[0] * cols for _ in range(rows)]

        for i in range(1, rows):
            dist[i][0] = i
        for j in range(1, cols):
            dist[0][j] = j

        for i in range(1, rows):
            for j in range(1, cols):
                cost = 0 if s1[i-1] == s2[j-1] else 1
                dist[i][j] = min(
                    dist[i-1][j] + 1,      # deletion
                    dist[i][j-1] + 1,      # insertion
                    dist[i-1][j-1] + cost  # substitution
                )

        return dist[rows-1][cols-1]

    def spell_check(self, word: str, max_distance: int = 1) -> Optional[str]:
        """Correct a word against the header vocabulary.

        Args:
            word: Word to check
            max_distance: Maximum edit distance to consider

        Returns:
            Corrected word if found, None otherwise
        """
        if not word:
            return None

        word_lower = word.lower()

        if word_lower in COMMON_MISSPELLINGS:
            return COMMON_MISSPELLINGS[word_lower]
        if word_lower in self.vocabulary:
            return word_lower

        # Short tokens are too ambiguous to correct
        if len(word_lower) < 5:
            return None

        best_match = None
        best_distance = max_distance + 1

        for vocab_word in self._sorted_vocabulary:
            if abs(len(word_lower) - len(vocab_word)) > max_distance:
                continue

            distance = self.edit_distance(word_lower, vocab_word)
            if distance < best_distance:
                best_distance = distance
                best_match = vocab_word

        return best_match

    def header_tokens(self, text: str) -> Set[str]:
        """Normalized token set with unknown tokens spell-corrected where possible."""
        tokens = set()
        for token in self.normalize_text(text).split():
            tokens.add(self.spell_check(token) or token)
        return tokens

    def token_overlap(self, s1: str, s2: str) -> float:
        """Token overlap ratio |A & B| / max(|A|, |B|) of the normalized token sets.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Overlap score between 0 and 1
        """
        tokens1 = self.header_tokens(s1)
        tokens2 = self.header_tokens(s2)

        if not tokens1 or not tokens2:
            return 0.0

        return len(tokens1 & tokens2) / max(len(tokens1), len(tokens2))


def candidate_names(schema: Dict) -> List[str]:
    """Every known name for a canonical field: label, id, then aliases."""
    return [schema["label"], schema["id"]] + list(schema["aliases"])
