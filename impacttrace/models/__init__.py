"""SQLAlchemy models."""

from impacttrace.models.evidence import EVIDENCE_TYPES, Evidence
from impacttrace.models.evidence_file import EvidenceFile
from impacttrace.models.evidence_links import EvidenceKPI, EvidenceKPIUpdate, EvidenceLocation
from impacttrace.models.initiative import Initiative
from impacttrace.models.kpi import KPI
from impacttrace.models.kpi_update import KPIUpdate
from impacttrace.models.location import Location
from impacttrace.models.organization import Organization

__all__ = [
    "EVIDENCE_TYPES",
    "Evidence",
    "EvidenceFile",
    "EvidenceKPI",
    "EvidenceKPIUpdate",
    "EvidenceLocation",
    "Initiative",
    "KPI",
    "KPIUpdate",
    "Location",
    "Organization",
]
