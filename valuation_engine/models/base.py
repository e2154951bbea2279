from typing import Protocol, Dict, Any

class NarrativeModel(Protocol):
    async def analyze_property(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Returns a payload with keys:
        summary, strengths, concerns, marketPosition, investmentPotential.
        """
        ...
