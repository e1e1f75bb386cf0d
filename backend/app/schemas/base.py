"""Base enums for the billing decision engine."""

from enum import Enum


class EncounterType(str, Enum):
    """Kind of clinical encounter."""

    OFFICE_VISIT = "office_visit"
    TELEHEALTH = "telehealth"
    CONSULTATION = "consultation"
    EMERGENCY = "emergency"
    INPATIENT = "inpatient"
    SURGERY = "surgery"
    PROCEDURE = "procedure"
    LAB = "lab"
    RADIOLOGY = "radiology"


class ClassificationType(str, Enum):
    """Service classification produced by the service classifier."""

    EVALUATION_MANAGEMENT = "evaluation_management"
    PROCEDURAL = "procedural"
    UNKNOWN = "unknown"


class ExamDetail(str, Enum):
    """Depth of the documented physical examination."""

    PROBLEM_FOCUSED = "problem_focused"
    EXPANDED = "expanded"
    DETAILED = "detailed"
    COMPREHENSIVE = "comprehensive"


class DataAmount(str, Enum):
    """Amount of data reviewed for medical decision making."""

    MINIMAL = "minimal"
    LIMITED = "limited"
    MODERATE = "moderate"
    EXTENSIVE = "extensive"


class RiskLevel(str, Enum):
    """Risk of complications for medical decision making."""

    MINIMAL = "minimal"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class DecisionResult(str, Enum):
    """Categorical outcome of a decision tree node."""

    PROCEED = "proceed"
    DENY = "deny"
    MANUAL_REVIEW = "manual_review"
    SKIPPED = "skipped"
    COMPLETE = "complete"


class IssueSeverity(str, Enum):
    """Severity of a validation issue."""

    ERROR = "error"  # Blocking
    WARNING = "warning"  # Non-blocking, usually raises manual review
    INFO = "info"


class RateSource(str, Enum):
    """Which fee tier produced the applied rate."""

    CONTRACTED = "contracted"
    RVU = "rvu"
    CHARGEMASTER = "chargemaster"


class RuleSource(str, Enum):
    """Origin of a coding rule."""

    LCD = "lcd"  # Local Coverage Determination
    NCD = "ncd"  # National Coverage Determination
    PAYER = "payer"
    INTERNAL = "internal"


class SDOHDomain(str, Enum):
    """Social determinant of health domains."""

    HOUSING = "housing"
    FOOD = "food"
    TRANSPORTATION = "transportation"
    SOCIAL_ISOLATION = "social_isolation"
    FINANCIAL = "financial"
    EDUCATION = "education"
    EMPLOYMENT = "employment"


class SDOHSeverity(str, Enum):
    """Severity of an SDOH factor."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CCMTier(str, Enum):
    """Chronic care management tier."""

    STANDARD = "standard"
    COMPLEX = "complex"
