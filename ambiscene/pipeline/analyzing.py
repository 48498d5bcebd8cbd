"""Analyzing stage: classify units, then segment the book into scenes.

Responsibilities:
- Build analysis units (single pages or two-page spreads).
- Classify units on a bounded worker pool with retries and graceful degradation.
- Run boundary detection and aggregation once every unit has finished.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from ..config import PipelineConfig
from ..errors import ErrorKind, ProviderError
from ..llm.classifier import ClassificationClient
from ..llm.prompts import build_spread_text
from ..llm.retry import DeadlineExceeded, RetryPolicy
from ..models.datatypes import DescriptorSet, ErrorRecord, OutcomeStatus, Page, PageOutcome, Scene
from ..scenes.boundaries import SceneBuilder
from ..telemetry.logger import RunLogger
from .context import AnalysisUnit, BookRun

_MAX_RECORDED_MESSAGE = 300


def build_analysis_units(pages: Sequence[Page], analysis_unit: str) -> list[AnalysisUnit]:
    """Group pages into classification units in reading order."""

    ordered = sorted(pages, key=lambda page: page.page_number)
    if analysis_unit != "spread":
        return [AnalysisUnit(page_numbers=(page.page_number,), text=page.text) for page in ordered]
    units: list[AnalysisUnit] = []
    for index in range(0, len(ordered), 2):
        pair = ordered[index : index + 2]
        if len(pair) == 1:
            units.append(AnalysisUnit(page_numbers=(pair[0].page_number,), text=pair[0].text))
            continue
        left, right = pair
        units.append(
            AnalysisUnit(
                page_numbers=(left.page_number, right.page_number),
                text=build_spread_text(left.text, right.text),
            )
        )
    return units


def shorten_message(message: str) -> str:
    """Trim a diagnostic message for storage on the book."""

    compact = " ".join(message.split())
    if len(compact) <= _MAX_RECORDED_MESSAGE:
        return compact
    return compact[: _MAX_RECORDED_MESSAGE - 3] + "..."


class PipelineAnalysisMixin:
    """Provide the analyzing stage."""

    _config: PipelineConfig
    _classifier: ClassificationClient
    _retry_policy: RetryPolicy
    _run_logger: RunLogger | None

    def _analyze(self, run: BookRun, pages: Sequence[Page]) -> list[Scene]:
        """Classify every unit, then build scenes; returns them in order."""

        units = build_analysis_units(pages, self._config.analysis_unit)
        workers = max(1, min(self._config.classification_concurrency, len(units)))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"classify-{run.book.book_id}"
        ) as pool:
            results = list(pool.map(lambda unit: self._classify_unit(run, unit), units))

        outcomes = [outcome for unit_outcomes in results for outcome in unit_outcomes]
        outcomes.sort(key=lambda item: item.page_number)
        run.report.page_outcomes = outcomes

        builder = SceneBuilder(threshold=self._config.boundary_threshold)
        scenes = builder.build(
            run.book.book_id, [(item.page_number, item.descriptors) for item in outcomes]
        )
        run.report.scenes = scenes
        run.report.page_scene_index = {
            page_number: scene.scene_number
            for scene in scenes
            for page_number in scene.page_numbers
        }
        return scenes

    def _classify_unit(self, run: BookRun, unit: AnalysisUnit) -> list[PageOutcome]:
        """Classify one unit; failures degrade to the neutral descriptor set."""

        if not run.may_dispatch():
            return self._unit_outcomes(unit, DescriptorSet.neutral(), OutcomeStatus.SKIPPED)
        if not unit.text.strip():
            return self._record_unit_failure(
                run, unit, ErrorKind.PERMANENT_REQUEST, "Page has no text content to classify."
            )
        try:
            descriptors = self._retry_policy.call(
                lambda: self._classifier.classify(unit.text),
                on_attempt=lambda _attempt: run.costs.add_classification_call(),
                on_retry=self._retry_callback(run, "analyzing"),
                should_continue=run.may_dispatch,
            )
        except DeadlineExceeded:
            return self._unit_outcomes(unit, DescriptorSet.neutral(), OutcomeStatus.SKIPPED)
        except ProviderError as exc:
            return self._record_unit_failure(run, unit, exc.kind, str(exc))
        return self._unit_outcomes(unit, descriptors, OutcomeStatus.SUCCEEDED)

    def _record_unit_failure(
        self, run: BookRun, unit: AnalysisUnit, kind: ErrorKind, message: str
    ) -> list[PageOutcome]:
        """Record one error for the unit and substitute neutral descriptors."""

        record = ErrorRecord(
            stage="analyzing",
            kind=kind,
            message=shorten_message(message),
            page_number=unit.first_page,
        )
        run.book.record_error(record)
        if self._run_logger is not None:
            self._run_logger.log_page_failure(run.book.book_id, unit.first_page, kind.value)
        return self._unit_outcomes(unit, DescriptorSet.neutral(), OutcomeStatus.SKIPPED, record)

    @staticmethod
    def _unit_outcomes(
        unit: AnalysisUnit,
        descriptors: DescriptorSet,
        status: OutcomeStatus,
        error: ErrorRecord | None = None,
    ) -> list[PageOutcome]:
        """Fan a unit result out to one outcome per covered page."""

        return [
            PageOutcome(page_number=page_number, status=status, descriptors=descriptors, error=error)
            for page_number in unit.page_numbers
        ]

    def _classification_failure_rate(self, run: BookRun) -> float:
        """Return the share of pages whose classification failed."""

        outcomes = run.report.page_outcomes
        if not outcomes:
            return 0.0
        failed = sum(1 for item in outcomes if item.error is not None)
        return failed / float(len(outcomes))
