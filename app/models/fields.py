"""
Enumerations shared by the table schemas, services and response models.
"""
from enum import Enum


class ReportKind(str, Enum):
    PLAYER = "player"
    ORGANIZATION = "organization"
    ALT_ACCOUNT = "alt_account"
    AFFILIATED_PEOPLE = "affiliated_people"


class PlayerReportCategory(str, Enum):
    BEHAVIOR = "behavior"
    SUSPECTED_ORG = "suspected_org"
    SUSPECTED_ALT = "suspected_alt"


class ArtifactKind(str, Enum):
    """Things a caller can attest to."""

    REPORT = "report"
    COMMENT = "comment"
    TAG = "tag"


class AttestationType(str, Enum):
    SUPPORT = "support"
    DISPUTE = "dispute"
    NEUTRAL = "neutral"


class TagType(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class MatchType(str, Enum):
    """Why a player showed up in a handle search."""

    CURRENT = "current"
    HISTORICAL = "historical"
    NEWLY_SOURCED = "newly_sourced"


class PlayerSort(str, Enum):
    ALPHABETICAL = "alphabetical"
    RECENT = "recent"
