"""
Tests for the heuristic component quality score.
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.quality import PASS_THRESHOLD, score_code

RICH_COMPONENT = '''"use client";
import { motion } from "framer-motion";
import { Star, Zap, Heart, Bell, Mail, Home } from "lucide-react";
import { Button } from "@/components/ui/button";
import { Card } from "@/components/ui/card";
import { Badge } from "@/components/ui/badge";
import { Input } from "@/components/ui/input";
import { Tabs } from "@/components/ui/tabs";
export default function Component() {
  return (
    <div className="bg-gradient-to-br from-slate-900 to-slate-700 backdrop-blur">
      <motion.div initial={{ opacity: 0 }} animate={{ opacity: 1 }} whileHover={{ scale: 1.05 }}>
        <motion.h1 initial={{ y: 10 }} whileInView={{ y: 0 }}>Title</motion.h1>
      </motion.div>
      <Star className="w-4 h-4" />
      <Zap className="w-4 h-4" />
      <Heart className="w-4 h-4" />
      <Bell className="w-4 h-4" />
      <Mail className="w-4 h-4" />
      <Home className="w-4 h-4" />
    </div>
  );
}'''


def test_rich_component_scores_full_marks():
    result = score_code(RICH_COMPONENT)

    assert result.score == 100
    assert result.passed
    assert result.issues == []
    assert result.details.animation_count == 5
    assert result.details.icon_count == 6
    assert result.details.component_count == 5


def test_minimal_component():
    code = 'export default function Component() {\n  return (\n    <div>Hi</div>\n  );\n}'
    result = score_code(code)

    assert result.score == 10
    assert not result.passed
    assert result.details.syntax_valid
    assert 'Missing "use client" directive (required for animations)' in result.issues


def test_undefined_fails_syntax_check():
    code = 'export default function Component() {\n  return (\n    <div>{undefined}</div>\n  );\n}'
    assert not score_code(code).details.syntax_valid


def test_to_dict_shape():
    data = score_code(RICH_COMPONENT).to_dict()
    assert set(data) == {"score", "passed", "issues", "details"}
    assert data["details"]["has_use_client"] is True


def test_threshold():
    assert PASS_THRESHOLD == 70
