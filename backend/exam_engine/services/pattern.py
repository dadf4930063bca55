"""Test pattern service.

``PatternEditor`` is the in-memory section editor used while a pattern is
being authored. ``PatternService`` persists patterns and re-validates them on
every write. ``assign_sections`` is the build step that maps an ordered
question list onto a pattern's sections.
"""

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from exam_engine.db.models import OnlineTestDB, TestPatternDB
from exam_engine.errors import InvalidStateError, NotFoundError, ValidationError
from exam_engine.models.pattern import (
    PatternBase,
    PatternCreate,
    PatternType,
    PatternUpdate,
    QuestionRange,
    ScoringRules,
    Section,
    SectionAssignment,
    TestPattern,
)
from exam_engine.models.question import QuestionType

logger = logging.getLogger(__name__)


# ==================== RANGES & VALIDATION ====================


def _with_range(section: Section, start: int) -> Section:
    end = start + section.question_count - 1
    return section.model_copy(update={"question_range": QuestionRange(start=start, end=max(end, start))})


def derive_ranges(sections: list[Section]) -> list[Section]:
    """Lay sections end to end starting at question 1."""
    result = []
    next_start = 1
    for section in sections:
        section = _with_range(section, next_start)
        next_start = section.question_range.end + 1
        result.append(section)
    return result


def fill_missing_ranges(sections: list[Section]) -> list[Section]:
    """Keep explicit ranges, derive the rest from a running start."""
    result = []
    running_start = 1
    for section in sections:
        if section.question_range is None:
            section = _with_range(section, running_start)
        running_start = section.question_range.end + 1
        result.append(section)
    return result


def validate_pattern(pattern: PatternBase) -> None:
    """Raise ``ValidationError`` listing every problem with the pattern."""
    errors: dict[str, str] = {}

    if not pattern.name or not pattern.name.strip():
        errors["name"] = "Name is required"
    if not pattern.sections:
        errors["sections"] = "At least one section is required"
    if pattern.total_duration < 1:
        errors["total_duration"] = "Duration must be at least 1 minute"

    expected_start = 1
    for i, s in enumerate(pattern.sections):
        prefix = f"sections.{i}"
        if not s.name or not s.name.strip():
            errors[f"{prefix}.name"] = "Section name is required"
        if s.question_count < 1:
            errors[f"{prefix}.question_count"] = "At least 1 question required"
        if s.marks_per_question < 0:
            errors[f"{prefix}.marks_per_question"] = "Marks cannot be negative"
        if s.negative_marks < 0:
            errors[f"{prefix}.negative_marks"] = "Negative marks cannot be below 0"

        r = s.question_range
        if r is None:
            errors[f"{prefix}.question_range"] = "Question range is missing"
            continue
        if r.count != s.question_count:
            errors[f"{prefix}.question_range"] = (
                f"Range Q{r.start}-Q{r.end} holds {r.count} questions, "
                f"section declares {s.question_count}"
            )
        elif r.start != expected_start:
            errors[f"{prefix}.question_range"] = (
                f"Range must start at Q{expected_start}, starts at Q{r.start}"
            )
        expected_start = r.end + 1

    if errors:
        raise ValidationError(errors)


class PatternEditor:
    """Edits a pattern's sections while keeping totals and ranges derived.

    With ``cascade_ranges`` every mutation re-flows all ranges so they stay
    contiguous from question 1. Without it an edit only recomputes the
    edited section's own range and later sections keep theirs until the
    author realigns them; ``validate_pattern`` reports the gap.
    """

    def __init__(self, pattern: PatternBase, cascade_ranges: bool = True):
        self.cascade_ranges = cascade_ranges
        self.pattern = pattern.model_copy(deep=True)
        if cascade_ranges:
            self.pattern.sections = derive_ranges(self.pattern.sections)
        else:
            self.pattern.sections = fill_missing_ranges(self.pattern.sections)

    @property
    def sections(self) -> list[Section]:
        return self.pattern.sections

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.sections):
            raise ValidationError.single("sections", f"No section at index {index}")

    def add_section(self, section: Section | None = None) -> Section:
        """Append a section starting right after the current last one."""
        if section is None:
            section = Section(name=f"Section {len(self.sections) + 1}")
        last = self.sections[-1] if self.sections else None
        start = last.question_range.end + 1 if last and last.question_range else 1
        section = _with_range(section, start)
        self.pattern.sections = [*self.sections, section]
        if self.cascade_ranges:
            self.pattern.sections = derive_ranges(self.sections)
        return self.sections[-1]

    def remove_section(self, index: int) -> Section:
        self._check_index(index)
        if len(self.sections) <= 1:
            raise ValidationError.single("sections", "At least one section is required")
        removed = self.sections[index]
        remaining = [s for i, s in enumerate(self.sections) if i != index]
        self.pattern.sections = derive_ranges(remaining)
        return removed

    def update_section(self, index: int, **changes) -> Section:
        """Apply field changes to one section.

        Changing ``question_count`` moves the range end; changing the range
        end moves ``question_count``.
        """
        self._check_index(index)
        current = self.sections[index]
        data = {**current.model_dump(), **changes}
        section = Section.model_validate(data)

        new_range = changes.get("question_range")
        if new_range is not None:
            r = section.question_range
            section = section.model_copy(update={"question_count": r.end - r.start + 1})
        elif "question_count" in changes:
            start = current.question_range.start if current.question_range else 1
            section = _with_range(section, start)

        sections = list(self.sections)
        sections[index] = section
        self.pattern.sections = derive_ranges(sections) if self.cascade_ranges else sections
        return self.pattern.sections[index]

    def set_total_duration(self, minutes: int) -> None:
        self.pattern.total_duration = minutes

    def validate(self) -> None:
        validate_pattern(self.pattern)


# ==================== TEST BUILD ====================


def assign_sections(pattern: PatternBase, question_ids: list[str]) -> list[SectionAssignment]:
    """Map question *n* of the list to the section whose range contains *n*."""
    validate_pattern(pattern)
    if len(question_ids) != pattern.total_questions:
        raise ValidationError.single(
            "question_ids",
            f"Pattern expects {pattern.total_questions} questions, got {len(question_ids)}",
        )

    rules = pattern.scoring_rules
    assignments = []
    for number, question_id in enumerate(question_ids, start=1):
        section = next(s for s in pattern.sections if number in s.question_range)
        assignments.append(
            SectionAssignment(
                question_number=number,
                question_id=question_id,
                section=section.name,
                marks=section.marks_per_question,
                negative_marks=section.negative_marks if rules.negative_marking_enabled else 0.0,
                partial_marking=section.partial_marking or rules.partial_marking,
            )
        )
    return assignments


# ==================== DEFAULT PATTERNS ====================

ST = QuestionType.SINGLE_CORRECT
MC = QuestionType.MULTIPLE_CORRECT
INT = QuestionType.INTEGER_TYPE
MM = QuestionType.MATRIX_MATCH
AR = QuestionType.ASSERTION_REASONING


def _jee_advanced_sections() -> list[Section]:
    sections = []
    for subject, code in [("Physics", "PHY"), ("Chemistry", "CHEM"), ("Mathematics", "MATH")]:
        sections.append(Section(
            name=f"{subject} - Single & Integer", subject_code=code, subject_name=subject,
            question_count=12, marks_per_question=3, negative_marks=1,
            question_types=[ST, INT], duration=30,
        ))
        sections.append(Section(
            name=f"{subject} - Multiple & Matrix", subject_code=code, subject_name=subject,
            question_count=8, marks_per_question=4, negative_marks=2,
            question_types=[MC, MM], duration=30, partial_marking=True,
        ))
    return sections


DEFAULT_PATTERNS: list[PatternCreate] = [
    PatternCreate(
        name="JEE Main Pattern",
        description="Standard JEE Main pattern: 75 questions across Physics, Chemistry and Mathematics",
        pattern_type=PatternType.JEE_MAIN,
        sections=[
            Section(name=subject, subject_code=code, subject_name=subject, question_count=25,
                    marks_per_question=4, negative_marks=1, question_types=[ST, INT], duration=60)
            for subject, code in [("Physics", "PHY"), ("Chemistry", "CHEM"), ("Mathematics", "MATH")]
        ],
        scoring_rules=ScoringRules(negative_marking_enabled=True),
        total_duration=180,
    ),
    PatternCreate(
        name="JEE Advanced Pattern",
        description="JEE Advanced pattern with multiple-correct, integer and matrix-match questions",
        pattern_type=PatternType.JEE_ADVANCED,
        sections=_jee_advanced_sections(),
        scoring_rules=ScoringRules(negative_marking_enabled=True, partial_marking=True),
        total_duration=180,
    ),
    PatternCreate(
        name="NEET Pattern",
        description="NEET UG pattern: 180 questions across Physics, Chemistry and Biology",
        pattern_type=PatternType.NEET,
        sections=[
            Section(name=subject, subject_code=code, subject_name=subject, question_count=45,
                    marks_per_question=4, negative_marks=1, question_types=[ST, AR], duration=50)
            for subject, code in [
                ("Physics", "PHY"), ("Chemistry", "CHEM"),
                ("Biology (Botany)", "BOT"), ("Biology (Zoology)", "ZOO"),
            ]
        ],
        scoring_rules=ScoringRules(negative_marking_enabled=True),
        total_duration=200,
    ),
]


# ==================== PATTERN SERVICE ====================


class PatternService:
    """Service for storing and retrieving test patterns."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _prepare(pattern: PatternBase) -> PatternBase:
        pattern = pattern.model_copy(update={"sections": fill_missing_ranges(pattern.sections)})
        validate_pattern(pattern)
        return pattern

    @staticmethod
    def _write(db_pattern: TestPatternDB, pattern: PatternBase) -> None:
        db_pattern.name = pattern.name
        db_pattern.description = pattern.description
        db_pattern.pattern_type = pattern.pattern_type.value
        db_pattern.subject_id = pattern.subject_id
        db_pattern.set_sections([s.model_dump(mode="json") for s in pattern.sections])
        db_pattern.set_scoring_rules(pattern.scoring_rules.model_dump())
        db_pattern.total_duration = pattern.total_duration
        db_pattern.total_marks = pattern.total_marks
        db_pattern.total_questions = pattern.total_questions

    async def _get_db_pattern(self, pattern_id: str) -> TestPatternDB:
        result = await self.db.execute(
            select(TestPatternDB).where(TestPatternDB.id == pattern_id)
        )
        db_pattern = result.scalar_one_or_none()
        if not db_pattern:
            raise NotFoundError(f"Pattern {pattern_id} not found")
        return db_pattern

    async def create_pattern(
        self,
        data: PatternCreate,
        created_by_id: str | None = None,
        is_default: bool = False,
    ) -> TestPattern:
        """Validate and store a new pattern."""
        pattern = self._prepare(data)
        db_pattern = TestPatternDB(is_default=is_default, created_by_id=created_by_id)
        self._write(db_pattern, pattern)
        self.db.add(db_pattern)
        await self.db.commit()
        logger.info(f"Created pattern {db_pattern.id} ({pattern.name})")
        return self._db_to_model(db_pattern)

    async def get_pattern(self, pattern_id: str) -> TestPattern | None:
        result = await self.db.execute(
            select(TestPatternDB).where(TestPatternDB.id == pattern_id)
        )
        db_pattern = result.scalar_one_or_none()
        return self._db_to_model(db_pattern) if db_pattern else None

    async def list_patterns(
        self,
        pattern_type: PatternType | None = None,
        is_default: bool | None = None,
        search: str | None = None,
        is_active: bool = True,
    ) -> list[TestPattern]:
        """List patterns, defaults first."""
        query = select(TestPatternDB).where(TestPatternDB.is_active == is_active)
        if pattern_type:
            query = query.where(TestPatternDB.pattern_type == pattern_type.value)
        if is_default is not None:
            query = query.where(TestPatternDB.is_default == is_default)
        if search:
            like = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(TestPatternDB.name).like(like),
                    func.lower(TestPatternDB.description).like(like),
                )
            )
        query = query.order_by(TestPatternDB.is_default.desc(), TestPatternDB.name)

        result = await self.db.execute(query)
        return [self._db_to_model(p) for p in result.scalars().all()]

    async def update_pattern(self, pattern_id: str, data: PatternUpdate) -> TestPattern:
        """Apply a partial update, re-validating the merged pattern."""
        db_pattern = await self._get_db_pattern(pattern_id)
        current = self._db_to_model(db_pattern)

        changes = data.model_dump(exclude_unset=True)
        is_active = changes.pop("is_active", None)
        merged = PatternBase.model_validate({**current.model_dump(), **changes})

        pattern = self._prepare(merged)
        self._write(db_pattern, pattern)
        if is_active is not None:
            db_pattern.is_active = is_active
        await self.db.commit()
        logger.info(f"Updated pattern {pattern_id}")
        return self._db_to_model(db_pattern)

    async def delete_pattern(self, pattern_id: str) -> None:
        """Soft delete; refused while any test uses the pattern."""
        db_pattern = await self._get_db_pattern(pattern_id)
        usage = await self.db.scalar(
            select(func.count()).select_from(OnlineTestDB).where(OnlineTestDB.pattern_id == pattern_id)
        )
        if usage:
            raise InvalidStateError(f"Cannot delete pattern: it is used by {usage} tests")
        db_pattern.is_active = False
        await self.db.commit()

    async def seed_default_patterns(self) -> dict[str, list[str]]:
        """Create the built-in patterns that are not stored yet."""
        result = await self.db.execute(
            select(TestPatternDB.pattern_type).where(TestPatternDB.is_default.is_(True))
        )
        existing = {row[0] for row in result.all()}

        results: dict[str, list[str]] = {"created": [], "skipped": []}
        for pattern in DEFAULT_PATTERNS:
            if pattern.pattern_type.value in existing:
                results["skipped"].append(pattern.name)
                continue
            await self.create_pattern(pattern, is_default=True)
            results["created"].append(pattern.name)

        if results["created"]:
            logger.info(f"Seeded default patterns: {', '.join(results['created'])}")
        return results

    async def clone_pattern(
        self, pattern_id: str, new_name: str, created_by_id: str | None = None
    ) -> TestPattern:
        """Copy a pattern (usually a default) into a new custom one."""
        original = await self.get_pattern(pattern_id)
        if not original:
            raise NotFoundError(f"Pattern {pattern_id} not found")
        clone = PatternCreate.model_validate({
            **original.model_dump(),
            "name": new_name,
            "description": f"Cloned from: {original.name}",
            "pattern_type": PatternType.CUSTOM,
        })
        return await self.create_pattern(clone, created_by_id=created_by_id)

    def _db_to_model(self, db_pattern: TestPatternDB) -> TestPattern:
        return TestPattern(
            id=db_pattern.id,
            name=db_pattern.name,
            description=db_pattern.description,
            pattern_type=PatternType(db_pattern.pattern_type),
            subject_id=db_pattern.subject_id,
            sections=[Section.model_validate(s) for s in db_pattern.get_sections()],
            scoring_rules=ScoringRules.model_validate(db_pattern.get_scoring_rules()),
            total_duration=db_pattern.total_duration,
            is_default=db_pattern.is_default,
            is_active=db_pattern.is_active,
            created_by_id=db_pattern.created_by_id,
            created_at=db_pattern.created_at,
        )
