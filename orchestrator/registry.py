from typing import Dict, List


class RegenerationRegistry:
    """
    Tracks which slides have a regeneration in flight.

    claim() checks and sets in one step with no await in between, so on a
    single event loop two callers can never both win the same slide.
    """

    def __init__(self):
        self._in_flight: Dict[str, bool] = {}

    def claim(self, slide_id: str) -> bool:
        if self._in_flight.get(slide_id):
            return False
        self._in_flight[slide_id] = True
        return True

    def release(self, slide_id: str) -> None:
        self._in_flight.pop(slide_id, None)

    def is_in_flight(self, slide_id: str) -> bool:
        return self._in_flight.get(slide_id, False)

    def active(self) -> List[str]:
        return [slide_id for slide_id, busy in self._in_flight.items() if busy]

    def clear(self) -> None:
        self._in_flight.clear()
