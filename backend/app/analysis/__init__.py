from app.analysis.engine import CommunicationAnalysisEngine
from app.analysis.models import AnalysisSnapshot

__all__ = ["AnalysisSnapshot", "CommunicationAnalysisEngine"]
