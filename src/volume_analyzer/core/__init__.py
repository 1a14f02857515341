"""Warstwa logiki domenowej i sesji analitycznych.

``AnalysisManager`` importujemy bezpośrednio z ``volume_analyzer.core.analysis_manager``:
moduły formatów zależą od ``core.models``, a menedżer od rejestru formatów.
"""

from . import models, session

__all__ = [
	"models",
	"session",
]
