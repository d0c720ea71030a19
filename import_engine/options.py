"""
import_engine.options - User-supplied import options.

JSON shape::

    {
      "map_ratings": true,
      "ratings": {"star1": "Rejected", "star2": "Rejected", "star3": "Unjudged",
                  "star4": "Accepted", "star5": "Accepted"}
    }

Every star maps explicitly to Accepted, Rejected or Unjudged.  Missing
keys fall back to DEFAULT_RATINGS.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from db.models import JUDGMENT_ACCEPTED, JUDGMENT_REJECTED
from import_engine.csv_parser import EnvelopeError

UNJUDGED = "Unjudged"
RATING_VALUES = frozenset({JUDGMENT_ACCEPTED, JUDGMENT_REJECTED, UNJUDGED})
STARS = (1, 2, 3, 4, 5)

DEFAULT_RATINGS: dict[int, str] = {
    1: JUDGMENT_REJECTED,
    2: JUDGMENT_REJECTED,
    3: UNJUDGED,
    4: JUDGMENT_ACCEPTED,
    5: JUDGMENT_ACCEPTED,
}


class OptionsError(EnvelopeError):
    """Raised when the options blob is not valid JSON or has the wrong shape."""
    pass


@dataclass(frozen=True)
class ImportOptions:
    map_ratings: bool = True
    ratings: dict[int, str] = field(default_factory=lambda: dict(DEFAULT_RATINGS))

    def judgment_for(self, stars: int) -> str | None:
        """Mapped judgment for a 1-5 star value, None when unjudged."""
        value = self.ratings.get(stars, UNJUDGED)
        return None if value == UNJUDGED else value

    def to_dict(self) -> dict:
        return {
            "map_ratings": self.map_ratings,
            "ratings": {f"star{s}": self.ratings[s] for s in STARS},
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    # ── Parsing ────────────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, data) -> ImportOptions:
        if not isinstance(data, dict):
            raise OptionsError("Invalid import options: expected a JSON object")

        map_ratings = data.get("map_ratings", True)
        if not isinstance(map_ratings, bool):
            raise OptionsError("Invalid import options: map_ratings must be a boolean")

        raw_ratings = data.get("ratings") or {}
        if not isinstance(raw_ratings, dict):
            raise OptionsError("Invalid import options: ratings must be an object")

        ratings = dict(DEFAULT_RATINGS)
        for star in STARS:
            value = raw_ratings.get(f"star{star}")
            if value is None:
                continue
            if value not in RATING_VALUES:
                raise OptionsError(
                    f"Invalid import options: star{star} must be one of "
                    f"{', '.join(sorted(RATING_VALUES))}"
                )
            ratings[star] = value

        return cls(map_ratings=map_ratings, ratings=ratings)

    @classmethod
    def from_json(cls, raw: str | None) -> ImportOptions:
        try:
            data = json.loads(raw or "{}")
        except ValueError as exc:
            raise OptionsError("Invalid JSON in options field") from exc
        return cls.from_dict(data)
