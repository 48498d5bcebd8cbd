"""Bounded multi-book scheduling.

Books are independent sequential-stage units of work; at most
`max_concurrent_books` run at once against a shared pipeline and cache.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

from ..models.datatypes import Book, BookReport, Page
from .orchestrator import SoundscapePipeline


@dataclass(frozen=True, slots=True)
class BookJob:
    """A book and its extracted pages, ready to run."""

    book: Book
    pages: tuple[Page, ...]


class BookScheduler:
    """Run many books through one pipeline with a book-level concurrency cap."""

    def __init__(self, pipeline: SoundscapePipeline, max_concurrent_books: int = 2) -> None:
        """Initialize the shared pipeline and the in-flight cap."""

        if max_concurrent_books < 1:
            raise ValueError("max_concurrent_books must be at least 1.")
        self.pipeline = pipeline
        self.max_concurrent_books = max_concurrent_books

    def run_all(self, jobs: Sequence[BookJob]) -> list[BookReport]:
        """Run every job and return reports in input order."""

        if not jobs:
            return []
        workers = min(self.max_concurrent_books, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="book") as pool:
            futures = [pool.submit(self.pipeline.run, job.book, job.pages) for job in jobs]
            return [future.result() for future in futures]
