"""
import_engine - Goodreads CSV import pipeline.

Public API (pure, no I/O):
    parse_rows(raw)        → list[ParsedRow]
    plan(row, options)     → RowPlan
    resolve(strategies)    → ResolveResult

The job runner lives in import_engine.importer and the Celery entry
point in import_engine.tasks.
"""

from import_engine.csv_parser import parse_rows, EnvelopeError      # noqa: F401
from import_engine.options import ImportOptions, OptionsError       # noqa: F401
from import_engine.row_planner import plan, RowPlan                 # noqa: F401
from import_engine.resolver import resolve, LookupOutcome           # noqa: F401
from import_engine.hydrator import MetadataHydrator                 # noqa: F401
