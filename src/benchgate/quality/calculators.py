"""Quality metric calculators and their registry"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..similarity.text import tokenize
from ..tasks.models import Task
from .models import QualityMetric, QualityScore, ValidationCode, ValidationIssue
from .validation import MAX_PROMPT_LENGTH, MIN_PROMPT_LENGTH, TaskValidator

logger = logging.getLogger(__name__)


@dataclass
class QualityContext:
    """Optional corpus information available to calculators"""
    max_similarity: Optional[float] = None
    similar_task_ids: List[str] = field(default_factory=list)


class MetricCalculator(ABC):
    """One quality metric; scores are 0-100"""

    metric: QualityMetric

    @abstractmethod
    def calculate(self, task: Task, context: Optional[QualityContext] = None) -> QualityScore:
        """Score the task"""

    def validate(self, task: Task) -> List[ValidationIssue]:
        """Metric-specific structural issues"""
        return []


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class CompletenessCalculator(MetricCalculator):
    """Seven weighted presence checks summing to 100"""

    metric = QualityMetric.COMPLETENESS

    CHECKS = [
        ("name", 10, lambda t: bool(t.name.strip())),
        ("description", 15, lambda t: bool(t.description.strip())),
        ("prompt", 25, lambda t: bool(t.content.prompt.strip())),
        ("expected_output", 20, lambda t: bool(t.content.expected_output.strip())),
        ("evaluation_criteria", 15, lambda t: any(c.strip() for c in t.content.evaluation_criteria)),
        ("examples", 10, lambda t: len(t.content.examples) >= 1),
        ("metadata", 5, lambda t: bool(t.category.strip()) and t.task_type is not None
            and t.difficulty_level is not None),
    ]

    def calculate(self, task: Task, context: Optional[QualityContext] = None) -> QualityScore:
        score = 0.0
        sub_scores: Dict[str, float] = {}
        issues, strengths, recommendations = [], [], []

        for name, weight, check in self.CHECKS:
            if check(task):
                score += weight
                sub_scores[name] = 100.0
                strengths.append(f"Has {name.replace('_', ' ')}")
            else:
                sub_scores[name] = 0.0
                issues.append(f"Missing {name.replace('_', ' ')}")
                recommendations.append(f"Add {name.replace('_', ' ')} (worth {weight} points)")

        return QualityScore(
            metric=self.metric,
            score=score,
            sub_scores=sub_scores,
            issues=issues,
            strengths=strengths,
            confidence=1.0,
            recommendations=recommendations,
        )

    def validate(self, task: Task) -> List[ValidationIssue]:
        return TaskValidator().required_field_issues(task)


class ClarityCalculator(MetricCalculator):
    """Readability, specificity and structure of the prompt"""

    metric = QualityMetric.CLARITY

    VAGUE_TERMS = [
        "maybe", "somehow", "something", "etc", "stuff", "things", "various",
        "some kind of", "probably", "might", "approximately", "as needed",
        "and so on", "whatever", "appropriate",
    ]

    IDEAL_SENTENCE_WORDS = (8, 25)

    def calculate(self, task: Task, context: Optional[QualityContext] = None) -> QualityScore:
        prompt = task.content.prompt.strip()
        if not prompt:
            return QualityScore(
                metric=self.metric,
                score=0.0,
                sub_scores={"readability": 0.0, "specificity": 0.0, "structure": 0.0},
                issues=["Prompt is empty"],
                confidence=1.0,
                recommendations=["Write a prompt"],
            )

        issues, strengths, recommendations = [], [], []

        sentences = [s for s in re.split(r"[.!?]+\s+|\n+", prompt) if s.strip()]
        avg_words = sum(len(s.split()) for s in sentences) / max(len(sentences), 1)
        low, high = self.IDEAL_SENTENCE_WORDS
        if avg_words < low:
            readability = _clamp(100 - (low - avg_words) * 8)
        elif avg_words > high:
            readability = _clamp(100 - (avg_words - high) * 4)
            issues.append(f"Long sentences (avg {avg_words:.0f} words)")
            recommendations.append("Split long sentences")
        else:
            readability = 100.0
            strengths.append("Sentence length is easy to follow")

        lowered = prompt.lower()
        vague = [
            term for term in self.VAGUE_TERMS
            if re.search(rf"\b{re.escape(term)}\b", lowered)
        ]
        specificity = _clamp(100 - 15 * len(vague))
        if vague:
            issues.append(f"Vague wording: {', '.join(vague)}")
            recommendations.append("Replace vague terms with concrete requirements")
        else:
            strengths.append("Precise wording")

        structure = 40.0
        if re.search(r"^\s*(?:[-*•]|\d+[.)])\s", prompt, re.MULTILINE):
            structure += 20
            strengths.append("Uses lists or numbered steps")
        if "```" in prompt or re.search(r"`[^`]+`", prompt):
            structure += 20
        if task.content.constraints:
            structure += 20
            strengths.append("States explicit constraints")
        else:
            recommendations.append("List constraints explicitly")

        sub_scores = {
            "readability": round(readability, 2),
            "specificity": round(specificity, 2),
            "structure": round(structure, 2),
        }
        return QualityScore(
            metric=self.metric,
            score=round(sum(sub_scores.values()) / len(sub_scores), 2),
            sub_scores=sub_scores,
            issues=issues,
            strengths=strengths,
            confidence=0.8,
            recommendations=recommendations,
        )


class DifficultyAccuracyCalculator(MetricCalculator):
    """Compares declared difficulty with a complexity estimate"""

    metric = QualityMetric.DIFFICULTY_ACCURACY

    TECHNICAL_TERMS = [
        "algorithm", "complexity", "concurrency", "concurrent", "thread", "async",
        "distributed", "optimize", "recursion", "recursive", "dynamic programming",
        "graph", "cache", "transaction", "lock", "memory", "parser", "protocol",
        "security", "scalable", "invariant", "race condition", "big-o",
    ]

    @staticmethod
    def _bucket(value: float, bounds: List[float]) -> int:
        for rank, bound in enumerate(bounds):
            if value < bound:
                return rank
        return len(bounds)

    def estimate_rank(self, task: Task) -> float:
        """Complexity estimate on the 0 (beginner) to 3 (expert) scale"""
        prompt = task.content.prompt.lower()
        words = len(prompt.split())
        terms = sum(1 for term in self.TECHNICAL_TERMS if re.search(rf"\b{re.escape(term)}\b", prompt))

        signals = [
            self._bucket(words, [40, 120, 300]),
            self._bucket(len(task.content.constraints), [2, 4, 7]),
            self._bucket(terms, [1, 3, 6]),
            self._bucket(len(task.content.examples), [2, 4, 7]),
        ]
        return sum(signals) / len(signals)

    def calculate(self, task: Task, context: Optional[QualityContext] = None) -> QualityScore:
        estimate = self.estimate_rank(task)
        estimated_rank = int(round(estimate))

        if task.difficulty_level is None:
            return QualityScore(
                metric=self.metric,
                score=50.0,
                sub_scores={"estimated_rank": float(estimated_rank)},
                issues=["Difficulty level not declared"],
                confidence=0.5,
                recommendations=["Declare a difficulty level"],
            )

        declared = task.difficulty_level.rank
        gap = abs(estimated_rank - declared)
        score = _clamp(100 - 25 * gap)

        issues, strengths, recommendations = [], [], []
        if gap == 0:
            strengths.append("Declared difficulty matches estimated complexity")
        else:
            direction = "lower" if estimated_rank < declared else "higher"
            issues.append(f"Estimated complexity is {direction} than declared {task.difficulty_level.value}")
            recommendations.append("Re-check the difficulty level or adjust the task scope")

        return QualityScore(
            metric=self.metric,
            score=score,
            sub_scores={
                "estimated_rank": float(estimated_rank),
                "declared_rank": float(declared),
                "raw_estimate": round(estimate, 3),
            },
            issues=issues,
            strengths=strengths,
            confidence=0.7,
            recommendations=recommendations,
        )


class UniquenessCalculator(MetricCalculator):
    """
    Distance from the existing corpus, when known, blended with
    template-phrase and lexical-diversity heuristics.
    """

    metric = QualityMetric.UNIQUENESS

    TEMPLATE_PHRASES = [
        "write a function that", "hello world", "fizzbuzz", "reverse a string",
        "fibonacci", "two sum", "palindrome", "implement a calculator", "todo app",
        "sort an array",
    ]

    def calculate(self, task: Task, context: Optional[QualityContext] = None) -> QualityScore:
        prompt = task.content.prompt.lower()
        tokens = tokenize(prompt)
        issues, strengths, recommendations = [], [], []

        templates = [p for p in self.TEMPLATE_PHRASES if p in prompt]
        template_score = _clamp(100 - 25 * len(templates))
        if templates:
            issues.append(f"Common template phrasing: {', '.join(templates)}")
            recommendations.append("Avoid well-known exercise templates")

        if len(tokens) >= 20:
            ratio = len(set(tokens)) / len(tokens)
            diversity_score = _clamp(ratio / 0.5 * 100)
        else:
            diversity_score = 70.0

        heuristic = (template_score + diversity_score) / 2
        sub_scores = {
            "template": round(template_score, 2),
            "diversity": round(diversity_score, 2),
        }

        if context is not None and context.max_similarity is not None:
            corpus_score = _clamp(100 * (1 - context.max_similarity))
            sub_scores["corpus_distance"] = round(corpus_score, 2)
            score = 0.7 * corpus_score + 0.3 * heuristic
            confidence = 0.9
            if context.max_similarity >= 0.7:
                issues.append(f"Closely resembles existing tasks ({context.max_similarity:.2f})")
                recommendations.append("Differentiate the task from similar existing tasks")
            else:
                strengths.append("Distinct from existing tasks")
        else:
            score = heuristic
            confidence = 0.6

        return QualityScore(
            metric=self.metric,
            score=round(score, 2),
            sub_scores=sub_scores,
            issues=issues,
            strengths=strengths,
            confidence=confidence,
            recommendations=recommendations,
        )


class FeasibilityCalculator(MetricCalculator):
    """Whether the task can be attempted and graded as written"""

    metric = QualityMetric.FEASIBILITY

    MAX_CONSTRAINTS = 10

    @staticmethod
    def contradictions(constraints: List[str]) -> List[str]:
        """Constraints that both require and forbid the same thing"""
        normalized = [" ".join(c.lower().split()).rstrip(".") for c in constraints]
        required = {c[len("must "):] for c in normalized if c.startswith("must ") and not c.startswith("must not ")}
        forbidden = {c[len("must not "):] for c in normalized if c.startswith("must not ")}
        return sorted(required & forbidden)

    def calculate(self, task: Task, context: Optional[QualityContext] = None) -> QualityScore:
        content = task.content
        prompt_length = len(content.prompt.strip())
        issues, strengths, recommendations = [], [], []

        if prompt_length == 0:
            length_score = 0.0
        elif prompt_length < MIN_PROMPT_LENGTH:
            length_score = prompt_length / MIN_PROMPT_LENGTH * 100
            issues.append("Prompt may be too short to specify the task")
        elif prompt_length > MAX_PROMPT_LENGTH:
            length_score = 50.0
            issues.append("Prompt is very long")
            recommendations.append("Trim the prompt")
        else:
            length_score = 100.0

        constraint_count = len(content.constraints)
        constraint_score = _clamp(100 - 10 * max(0, constraint_count - self.MAX_CONSTRAINTS))
        if constraint_count > self.MAX_CONSTRAINTS:
            issues.append(f"{constraint_count} constraints may be impractical")

        if content.examples:
            consistent = sum(1 for e in content.examples if e.input.strip() and e.output.strip())
            example_score = consistent / len(content.examples) * 100
            if consistent == len(content.examples):
                strengths.append("Examples include inputs and outputs")
            else:
                issues.append("Some examples lack an input or output")
        else:
            example_score = 70.0
            recommendations.append("Add at least one example")

        if content.expected_output.strip():
            output_score = 100.0
            strengths.append("Expected output makes grading possible")
        else:
            output_score = 40.0
            issues.append("No expected output to grade against")

        conflicts = self.contradictions(content.constraints)
        conflict_score = _clamp(100 - 50 * len(conflicts))
        if conflicts:
            issues.append(f"Contradictory constraints: {', '.join(conflicts)}")
            recommendations.append("Resolve contradictory constraints")

        sub_scores = {
            "prompt_length": round(length_score, 2),
            "constraint_load": round(constraint_score, 2),
            "example_consistency": round(example_score, 2),
            "expected_output": output_score,
            "consistency": conflict_score,
        }
        return QualityScore(
            metric=self.metric,
            score=round(sum(sub_scores.values()) / len(sub_scores), 2),
            sub_scores=sub_scores,
            issues=issues,
            strengths=strengths,
            confidence=0.8,
            recommendations=recommendations,
        )

    def validate(self, task: Task) -> List[ValidationIssue]:
        return [
            ValidationIssue(
                field="content.constraints",
                code=ValidationCode.INVALID_VALUE,
                message=f"Constraint both required and forbidden: {conflict}",
            )
            for conflict in self.contradictions(task.content.constraints)
        ]


class MetricRegistry:
    """Calculators keyed by metric; the aggregator iterates whatever is registered"""

    def __init__(self, calculators: Optional[List[MetricCalculator]] = None):
        self._calculators: Dict[QualityMetric, MetricCalculator] = {}
        for calculator in calculators or []:
            self.register(calculator)

    @classmethod
    def default(cls) -> "MetricRegistry":
        return cls([
            CompletenessCalculator(),
            ClarityCalculator(),
            DifficultyAccuracyCalculator(),
            UniquenessCalculator(),
            FeasibilityCalculator(),
        ])

    def register(self, calculator: MetricCalculator):
        if calculator.metric in self._calculators:
            logger.info(f"Replacing calculator for {calculator.metric.value}")
        self._calculators[calculator.metric] = calculator

    def unregister(self, metric: QualityMetric):
        self._calculators.pop(metric, None)

    def get(self, metric: QualityMetric) -> Optional[MetricCalculator]:
        return self._calculators.get(metric)

    def calculators(self) -> List[MetricCalculator]:
        return list(self._calculators.values())

    def __len__(self) -> int:
        return len(self._calculators)
