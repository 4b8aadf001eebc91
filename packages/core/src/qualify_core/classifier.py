"""Anchor-based income document classifier.

Scans document text for anchors: IRS form numbers and titles (strong) and
field labels (weak). The filename contributes a weak signal as well. When
the anchors strongly imply a type different from the declared one, the
classifier overrides the declaration and records both classifications.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Union

import structlog

from .models.documents import DocumentType

logger = structlog.get_logger()


STRONG = 3
WEAK = 1

# Minimum score a different type needs to override a declared type
OVERRIDE_MIN_SCORE = STRONG

# Candidates within this share of the top score compete on specificity
COMPARABLE_RATIO = 0.75

# Score at which classification confidence reaches 1.0
FULL_CONFIDENCE_SCORE = 6

# Confidence when only the declared type is available
DECLARED_ONLY_CONFIDENCE = 0.5


# Higher wins among comparable candidates
SPECIFICITY: dict[DocumentType, int] = {
    DocumentType.SCHEDULE_C: 3,
    DocumentType.SCHEDULE_E: 3,
    DocumentType.SCHEDULE_F: 3,
    DocumentType.K1: 3,
    DocumentType.FORM_1065: 2,
    DocumentType.FORM_1120S: 2,
    DocumentType.W2: 1,
    DocumentType.FORM_1099: 1,
    DocumentType.VOE: 1,
    DocumentType.PAY_STUB: 1,
    DocumentType.FORM_1040: 0,
    DocumentType.OTHER: -1,
}


# (pattern, weight, label) per document type
ANCHOR_PATTERNS: dict[DocumentType, list[tuple[str, int, str]]] = {
    DocumentType.SCHEDULE_C: [
        (r"schedule\s+c\b(?!-)", STRONG, "Schedule C"),
        (r"profit\s+or\s+loss\s+from\s+business", STRONG, "Profit or Loss From Business"),
        (r"gross\s+receipts\s+or\s+sales", WEAK, "Gross receipts or sales"),
        (r"net\s+profit\s+or\s+\(?loss\)?", WEAK, "Net profit or (loss)"),
        (r"sole\s+proprietorship", WEAK, "Sole proprietorship"),
    ],
    DocumentType.SCHEDULE_E: [
        (r"schedule\s+e\b", STRONG, "Schedule E"),
        (r"supplemental\s+income\s+and\s+loss", STRONG, "Supplemental Income and Loss"),
        (r"rents\s+received", WEAK, "Rents received"),
        (r"fair\s+rental\s+days", WEAK, "Fair rental days"),
    ],
    DocumentType.SCHEDULE_F: [
        (r"schedule\s+f\b", STRONG, "Schedule F"),
        (r"profit\s+or\s+loss\s+from\s+farming", STRONG, "Profit or Loss From Farming"),
        (r"net\s+farm\s+profit", WEAK, "Net farm profit"),
    ],
    DocumentType.K1: [
        (r"schedule\s+k-?1\b", STRONG, "Schedule K-1"),
        (r"(partner|shareholder)['’]?s\s+share\s+of\s+(current\s+year\s+)?income",
         STRONG, "Share of income, deductions, credits"),
        (r"guaranteed\s+payments", WEAK, "Guaranteed payments"),
        (r"ordinary\s+business\s+income\s+\(loss\)", WEAK, "Ordinary business income (loss)"),
    ],
    DocumentType.FORM_1065: [
        (r"form\s+1065\b", STRONG, "Form 1065"),
        (r"return\s+of\s+partnership\s+income", STRONG, "U.S. Return of Partnership Income"),
    ],
    DocumentType.FORM_1120S: [
        (r"form\s+1120-?s\b", STRONG, "Form 1120-S"),
        (r"income\s+tax\s+return\s+for\s+an\s+s\s+corporation", STRONG,
         "U.S. Income Tax Return for an S Corporation"),
    ],
    DocumentType.W2: [
        (r"form\s+w-?2\b", STRONG, "Form W-2"),
        (r"wage\s+and\s+tax\s+statement", STRONG, "Wage and Tax Statement"),
        (r"wages,\s+tips,\s+other\s+comp", WEAK, "Wages, tips, other compensation"),
        (r"social\s+security\s+wages", WEAK, "Social security wages"),
    ],
    DocumentType.FORM_1099: [
        (r"form\s+1099(-[a-z]+)?\b", STRONG, "Form 1099"),
        (r"nonemployee\s+compensation", STRONG, "Nonemployee compensation"),
        (r"payer['’]?s\s+tin", WEAK, "Payer's TIN"),
        (r"recipient['’]?s\s+tin", WEAK, "Recipient's TIN"),
    ],
    DocumentType.VOE: [
        (r"request\s+for\s+verification\s+of\s+employment", STRONG,
         "Request for Verification of Employment"),
        (r"form\s+1005\b", STRONG, "Form 1005"),
        (r"verification\s+of\s+employment", WEAK, "Verification of employment"),
        (r"present\s+base\s+pay", WEAK, "Present base pay"),
        (r"probability\s+of\s+continued\s+employment", WEAK,
         "Probability of continued employment"),
    ],
    DocumentType.PAY_STUB: [
        (r"(earnings\s+statement|pay\s*stub|statement\s+of\s+earnings)", STRONG,
         "Earnings statement"),
        (r"gross\s+pay", WEAK, "Gross pay"),
        (r"net\s+pay", WEAK, "Net pay"),
        (r"\bytd\b|year[\s-]to[\s-]date", WEAK, "Year-to-date"),
        (r"pay\s+period", WEAK, "Pay period"),
        (r"pay\s+date", WEAK, "Pay date"),
    ],
    DocumentType.FORM_1040: [
        (r"form\s+1040\b", STRONG, "Form 1040"),
        (r"u\.?s\.?\s+individual\s+income\s+tax\s+return", STRONG,
         "U.S. Individual Income Tax Return"),
        (r"adjusted\s+gross\s+income", WEAK, "Adjusted gross income"),
        (r"filing\s+status", WEAK, "Filing status"),
    ],
}


# Filename patterns, more specific first. Underscores count as separators.
FILENAME_PATTERNS: list[tuple[str, DocumentType]] = [
    (r"sch(edule)?[_\s-]?c(?![a-z0-9])", DocumentType.SCHEDULE_C),
    (r"sch(edule)?[_\s-]?e(?![a-z0-9])", DocumentType.SCHEDULE_E),
    (r"sch(edule)?[_\s-]?f(?![a-z0-9])", DocumentType.SCHEDULE_F),
    (r"(?<![a-z0-9])k[_\s-]?1(?![0-9])", DocumentType.K1),
    (r"(?<![0-9])1065(?![0-9])", DocumentType.FORM_1065),
    (r"(?<![0-9])1120[_\s-]?s(?![a-z])", DocumentType.FORM_1120S),
    (r"(?<![a-z0-9])w[_\s-]?2(?![0-9])", DocumentType.W2),
    (r"(?<![0-9])1099", DocumentType.FORM_1099),
    (r"((?<![a-z])voe(?![a-z])|verification[_\s]?of[_\s]?employment)", DocumentType.VOE),
    (r"(pay[_\s-]?stub|paystub|pay[_\s-]?slip|earnings)", DocumentType.PAY_STUB),
    (r"(?<![0-9])1040(?![0-9])|tax[_\s-]?return", DocumentType.FORM_1040),
]


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one document."""
    final_type: DocumentType
    anchors_found: list[str] = field(default_factory=list)
    override: bool = False
    original_classification: Optional[DocumentType] = None
    confidence: float = 0.0
    scores: dict[DocumentType, int] = field(default_factory=dict)


class DocumentClassifier:
    """
    Classify income documents by weighted anchors.

    Ties between comparable candidates are broken in favour of the more
    specific form (a Schedule C over the Form 1040 it is attached to),
    since specific forms drive different calculation methods.
    """

    def __init__(self):
        """Initialize classifier with compiled regex patterns."""
        self._anchors = {
            doc_type: [
                (re.compile(pattern, re.IGNORECASE), weight, label)
                for pattern, weight, label in patterns
            ]
            for doc_type, patterns in ANCHOR_PATTERNS.items()
        }
        self._filename_patterns = [
            (re.compile(pattern, re.IGNORECASE), doc_type)
            for pattern, doc_type in FILENAME_PATTERNS
        ]

    def classify(
        self,
        content: Union[str, bytes, None],
        declared_type: Optional[DocumentType] = None,
        filename: Optional[str] = None,
    ) -> ClassificationResult:
        """
        Classify a document from its text and optional hints.

        Args:
            content: Extracted text (possibly partial) or raw bytes
            declared_type: Type declared by the user or upload flow
            filename: Original filename, used as a weak signal

        Returns:
            ClassificationResult. Never raises: unreadable content yields
            OTHER with no anchors and confidence 0.
        """
        text = self._readable_text(content)
        if text is None:
            logger.warning("classification_unreadable", declared_type=declared_type)
            return ClassificationResult(final_type=DocumentType.OTHER)

        scores, labels = self._score(text, filename)

        if not scores:
            if declared_type is not None:
                return ClassificationResult(
                    final_type=declared_type,
                    confidence=DECLARED_ONLY_CONFIDENCE if text.strip() else 0.0,
                )
            return ClassificationResult(final_type=DocumentType.OTHER)

        winner = self._pick_winner(scores, declared_type)
        winner_score = scores[winner]

        if declared_type is not None and winner != declared_type:
            if winner_score >= OVERRIDE_MIN_SCORE:
                logger.info(
                    "classification_override",
                    declared_type=declared_type.value,
                    final_type=winner.value,
                    anchors=labels[winner],
                )
                return ClassificationResult(
                    final_type=winner,
                    anchors_found=labels[winner],
                    override=True,
                    original_classification=declared_type,
                    confidence=self._confidence(winner_score),
                    scores=scores,
                )
            # Weak evidence does not override a declaration
            return ClassificationResult(
                final_type=declared_type,
                anchors_found=labels.get(declared_type, []),
                confidence=max(
                    DECLARED_ONLY_CONFIDENCE,
                    self._confidence(scores.get(declared_type, 0)),
                ),
                scores=scores,
            )

        confidence = self._confidence(winner_score)
        if declared_type is not None:
            confidence = max(confidence, DECLARED_ONLY_CONFIDENCE)
        return ClassificationResult(
            final_type=winner,
            anchors_found=labels[winner],
            confidence=confidence,
            scores=scores,
        )

    @staticmethod
    def _readable_text(content: Union[str, bytes, None]) -> Optional[str]:
        if content is None:
            return None
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8")
            except UnicodeDecodeError:
                return None
        if not isinstance(content, str):
            return None
        # Mostly control characters means binary garbage, not text
        printable = sum(1 for ch in content if ch.isprintable() or ch.isspace())
        if content and printable / len(content) < 0.8:
            return None
        return content

    def _score(
        self,
        text: str,
        filename: Optional[str],
    ) -> tuple[dict[DocumentType, int], dict[DocumentType, list[str]]]:
        scores: dict[DocumentType, int] = {}
        labels: dict[DocumentType, list[str]] = {}

        for doc_type, patterns in self._anchors.items():
            for pattern, weight, label in patterns:
                if pattern.search(text):
                    scores[doc_type] = scores.get(doc_type, 0) + weight
                    labels.setdefault(doc_type, []).append(label)

        if filename:
            for pattern, doc_type in self._filename_patterns:
                if pattern.search(filename):
                    scores[doc_type] = scores.get(doc_type, 0) + WEAK
                    labels.setdefault(doc_type, []).append(f"filename:{filename}")
                    break

        return scores, labels

    @staticmethod
    def _pick_winner(
        scores: dict[DocumentType, int],
        declared_type: Optional[DocumentType],
    ) -> DocumentType:
        top = max(scores.values())
        comparable = [t for t, s in scores.items() if s >= top * COMPARABLE_RATIO]
        order = list(DocumentType)
        return max(
            comparable,
            key=lambda t: (SPECIFICITY[t], scores[t], t == declared_type, -order.index(t)),
        )

    @staticmethod
    def _confidence(score: int) -> float:
        return round(min(1.0, score / FULL_CONFIDENCE_SCORE), 2)
