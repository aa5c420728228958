"""
Heuristic quality score for a generated component.

The score is informational: it is reported to the client as a `quality` event
and never blocks a response.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

PASS_THRESHOLD = 70

ANIMATION_RE = re.compile(r"initial=|whileInView=|whileHover=|animate=")
ICON_RE = re.compile(r'<[A-Z][a-zA-Z]+\s+className="[^"]*w-\d+[^"]*"')
UI_IMPORT_RE = re.compile(r'from "@/components/ui/[^"]+"')


@dataclass
class QualityDetails:
    has_use_client: bool = False
    has_motion_import: bool = False
    has_lucide_import: bool = False
    animation_count: int = 0
    has_animations: bool = False
    icon_count: int = 0
    has_icons: bool = False
    component_count: int = 0
    has_multiple_components: bool = False
    syntax_valid: bool = False


@dataclass
class QualityScore:
    score: int
    passed: bool
    issues: List[str] = field(default_factory=list)
    details: QualityDetails = field(default_factory=QualityDetails)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def score_code(code: str) -> QualityScore:
    """Score 0-100 from imports, animations, icons, shadcn usage and styling."""
    issues: List[str] = []
    details = QualityDetails()
    score = 0

    details.has_use_client = '"use client"' in code or "'use client'" in code
    if details.has_use_client:
        score += 10
    else:
        issues.append('Missing "use client" directive (required for animations)')

    details.has_motion_import = 'from "framer-motion"' in code
    if details.has_motion_import:
        score += 15
    else:
        issues.append("Missing framer-motion import")

    details.has_lucide_import = 'from "lucide-react"' in code
    if details.has_lucide_import:
        score += 15
    else:
        issues.append("Missing lucide-react icons")

    details.animation_count = len(ANIMATION_RE.findall(code))
    details.has_animations = details.animation_count >= 5
    if details.has_animations:
        score += 20
    else:
        issues.append(f"Not enough animations (found {details.animation_count}, need at least 5)")

    details.icon_count = len(ICON_RE.findall(code))
    details.has_icons = details.icon_count >= 6
    if details.has_icons:
        score += 15
    else:
        issues.append(f"Not enough icons (found {details.icon_count}, need at least 6)")

    details.component_count = len(set(UI_IMPORT_RE.findall(code)))
    details.has_multiple_components = details.component_count >= 5
    if details.has_multiple_components:
        score += 20
    else:
        issues.append(f"Not enough shadcn components (found {details.component_count}, need at least 5)")

    if "bg-gradient-to-" in code or ("from-" in code and "to-" in code):
        score += 5
    else:
        issues.append("No gradient styling detected")

    if "backdrop-blur" in code or "bg-white/" in code:
        score += 5
    else:
        issues.append("No modern visual effects (glassmorphism/transparency)")

    details.syntax_valid = (
        "export default function Component" in code
        and "return (" in code
        and "</" in code
        and "undefined" not in code
    )
    if details.syntax_valid:
        score += 10
    else:
        issues.append("Basic syntax validation failed")

    # Weights sum past 100; the score is reported out of 100
    score = min(score, 100)
    return QualityScore(
        score=score,
        passed=score >= PASS_THRESHOLD,
        issues=issues,
        details=details,
    )
