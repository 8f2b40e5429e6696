"""
Level and tier arithmetic.

Level 1 starts at zero points; advancing from level ``l`` costs
``floor(20 * 1.1 ** (l - 1))`` points. Tiers are fixed point bands.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

POINTS_PER_LEVEL_BASE = 20
LEVEL_SCALING_FACTOR = 1.1
MAX_LEVEL = 100
TOP_TIER_VIRTUAL_RANGE = 5000


@dataclass(frozen=True)
class Tier:
    id: str
    name: str
    icon: str
    color: str
    point_range: Tuple[int, Optional[int]]
    level_range: Tuple[int, int]
    description: str

    @property
    def min_points(self) -> int:
        return self.point_range[0]

    @property
    def max_points(self) -> Optional[int]:
        return self.point_range[1]

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "min_points": self.min_points,
            "max_points": self.max_points,
            "min_level": self.level_range[0],
            "max_level": self.level_range[1],
            "description": self.description,
        }


TIERS: List[Tier] = [
    Tier("SMILE_STARTER", "SMILE Starter", "✨", "#8B5CF6", (0, 4999), (1, 10),
         "Beginning your SMILE journey"),
    Tier("SMILE_LEARNER", "SMILE Learner", "📚", "#3B82F6", (5000, 9999), (11, 20),
         "Growing through questions and inquiry"),
    Tier("SMILE_APPRENTICE", "SMILE Apprentice", "🌱", "#10B981", (10000, 24999), (21, 35),
         "Developing strong inquiry skills"),
    Tier("SMILE_MAKER", "SMILE Maker", "🔨", "#F59E0B", (25000, 49999), (36, 55),
         "Creating meaningful learning experiences"),
    Tier("SMILE_TRAINER", "SMILE Trainer", "👨‍🏫", "#EF4444", (50000, 99999), (56, 80),
         "Guiding others in their learning journey"),
    Tier("SMILE_MASTER", "SMILE Master", "🏆", "#FFD700", (100000, None), (81, 100),
         "Master of inquiry-based learning"),
]

TIERS_BY_ID: Dict[str, Tier] = {tier.id: tier for tier in TIERS}


def _level_step(level: int) -> int:
    """Points needed to advance from ``level`` to ``level + 1``"""
    return math.floor(POINTS_PER_LEVEL_BASE * LEVEL_SCALING_FACTOR ** (level - 1))


def calculate_level(total_points: int) -> int:
    level = 1
    remaining = total_points
    needed = POINTS_PER_LEVEL_BASE

    while remaining >= needed and level < MAX_LEVEL:
        remaining -= needed
        level += 1
        needed = _level_step(level)

    return level


def points_for_next_level(current_level: int) -> int:
    return math.floor(POINTS_PER_LEVEL_BASE * LEVEL_SCALING_FACTOR ** current_level)


def total_points_for_level(level: int) -> int:
    return sum(_level_step(step) for step in range(1, level))


def level_progress(total_points: int) -> Dict[str, float]:
    """Progress inside the current level, as points and as a 0..1 fraction"""
    level = calculate_level(total_points)
    floor_points = total_points_for_level(level)
    step = _level_step(level)
    into_level = total_points - floor_points

    if level >= MAX_LEVEL:
        return {"level": level, "points_in_level": into_level, "points_for_level": step,
                "points_to_next": 0, "progress": 1.0}

    return {
        "level": level,
        "points_in_level": into_level,
        "points_for_level": step,
        "points_to_next": step - into_level,
        "progress": into_level / step if step else 0.0,
    }


def get_tier_from_points(total_points: int) -> Tier:
    for tier in TIERS:
        upper = tier.max_points
        if total_points >= tier.min_points and (upper is None or total_points <= upper):
            return tier
    return TIERS[0] if total_points < 0 else TIERS[-1]


def get_tier_from_level(level: int) -> Tier:
    for tier in TIERS:
        if tier.level_range[0] <= level <= tier.level_range[1]:
            return tier
    return TIERS[-1]


def calculate_tier_progress(total_points: int) -> float:
    tier = get_tier_from_points(total_points)
    if tier.max_points is None:
        return min(1.0, (total_points - tier.min_points) / TOP_TIER_VIRTUAL_RANGE)
    return (total_points - tier.min_points) / (tier.max_points - tier.min_points)


def get_next_tier(tier_id: str) -> Optional[Tier]:
    ids = [tier.id for tier in TIERS]
    if tier_id not in ids:
        return None
    index = ids.index(tier_id)
    if index < len(TIERS) - 1:
        return TIERS[index + 1]
    return None


def points_to_next_tier(total_points: int) -> int:
    tier = get_tier_from_points(total_points)
    if tier.max_points is None:
        return 0
    return tier.max_points + 1 - total_points
