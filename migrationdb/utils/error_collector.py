"""
Error Collection and Management Module

Handles categorization, collection, and reporting of errors raised while
streaming, verifying and fingerprinting databases.
"""

import logging
import sys
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from dataclasses import dataclass

from tabulate import tabulate


class ErrorCategory(Enum):
    """Categories of errors that can occur during a migration run."""
    CONFIGURATION = "CONFIGURATION"
    CONNECTION = "CONNECTION"
    PRODUCER_FAILURE = "PRODUCER_FAILURE"
    CONSUMER_FAILURE = "CONSUMER_FAILURE"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    COMPARISON_MISMATCH = "COMPARISON_MISMATCH"
    CANCELLED = "CANCELLED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass
class MigrationIssue:
    """Represents a single recorded error with context."""
    category: ErrorCategory
    message: str
    stage: Optional[str] = None
    critical: bool = False
    timestamp: datetime = None
    context: Optional[Dict] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()


class ErrorCollector:
    """Collects and manages errors during migration operations."""

    def __init__(self):
        self.errors: List[MigrationIssue] = []
        self.warnings: List[MigrationIssue] = []
        self.logger = logging.getLogger(__name__)
        self._error_counts: Dict[ErrorCategory, int] = {}
        self._critical_error_count = 0

    def add_error(self, category: str, message: str, stage: Optional[str] = None,
                  critical: bool = False, context: Optional[Dict] = None) -> None:
        """
        Add an error to the collection.

        Args:
            category: Error category string
            message: Error message
            stage: Operation that failed (migration, verification, ...)
            critical: Whether this is a critical error
            context: Additional context dictionary
        """
        try:
            error_category = ErrorCategory(category)
        except ValueError:
            error_category = ErrorCategory.UNKNOWN_ERROR
            self.logger.warning(f"Unknown error category: {category}")

        issue = MigrationIssue(
            category=error_category,
            message=message,
            stage=stage,
            critical=critical,
            context=context
        )

        if critical:
            self.errors.append(issue)
            self._critical_error_count += 1
            self.logger.critical(f"Critical error in {stage or 'unknown'}: {message}")
        else:
            self.warnings.append(issue)
            self.logger.warning(f"Warning in {stage or 'unknown'}: {message}")

        self._error_counts[error_category] = self._error_counts.get(error_category, 0) + 1

    def add_exception(self, stage: str, exc: Exception, critical: bool = True) -> None:
        """
        Record an exception, deriving the category from the exception itself.

        Exceptions from the migrationdb taxonomy carry their own category;
        anything else is filed as UNKNOWN_ERROR.

        Args:
            stage: Operation that failed
            exc: Exception to record
            critical: Whether this is critical (default True)
        """
        category = getattr(exc, 'category', ErrorCategory.UNKNOWN_ERROR)
        self.add_error(
            category=category.value,
            message=str(exc),
            stage=stage,
            critical=critical,
            context={'exception': type(exc).__name__}
        )

    def add_connection_error(self, side: str, message: str, critical: bool = True) -> None:
        """
        Add a database connection error.

        Args:
            side: Which database failed (source/target)
            message: Error message
            critical: Whether this is critical (default True)
        """
        self.add_error(
            category=ErrorCategory.CONNECTION.value,
            message=f"{side} connection error: {message}",
            stage='connectivity',
            critical=critical,
            context={'side': side}
        )

    def has_errors(self) -> bool:
        """Check if any errors have been collected."""
        return len(self.errors) > 0

    def has_critical_errors(self) -> bool:
        """Check if any critical errors have been collected."""
        return self._critical_error_count > 0

    def has_warnings(self) -> bool:
        """Check if any warnings have been collected."""
        return len(self.warnings) > 0

    def get_error_count(self) -> int:
        """Get total error count."""
        return len(self.errors)

    def get_warning_count(self) -> int:
        """Get total warning count."""
        return len(self.warnings)

    def get_critical_error_count(self) -> int:
        """Get critical error count."""
        return self._critical_error_count

    def get_errors_by_category(self, category: ErrorCategory) -> List[MigrationIssue]:
        """
        Get all errors of a specific category.

        Args:
            category: Error category to filter by

        Returns:
            List of errors in the specified category
        """
        all_issues = self.errors + self.warnings
        return [issue for issue in all_issues if issue.category == category]

    def get_errors_by_stage(self, stage: str) -> List[MigrationIssue]:
        """Get all errors recorded for one stage."""
        all_issues = self.errors + self.warnings
        return [issue for issue in all_issues if issue.stage == stage]

    def clear(self) -> None:
        """Clear all collected errors and warnings."""
        self.errors.clear()
        self.warnings.clear()
        self._error_counts.clear()
        self._critical_error_count = 0
        self.logger.info("Error collector cleared")

    def format_summary(self) -> str:
        """Render the collected issues as a table."""
        rows = [
            [i, issue.category.value, issue.stage or '-',
             'yes' if issue.critical else 'no', issue.message]
            for i, issue in enumerate(self.errors + self.warnings, 1)
        ]
        return tabulate(rows, headers=['#', 'Category', 'Stage', 'Critical', 'Message'],
                        tablefmt='simple')

    def print_summary(self, out=None) -> None:
        """Print a summary of collected errors and warnings (default stdout)."""
        out = out or sys.stdout
        print("\n" + "=" * 60, file=out)
        print("📊 ERROR SUMMARY", file=out)
        print("=" * 60, file=out)

        if not self.has_errors() and not self.has_warnings():
            print("✅ No errors or warnings to report!", file=out)
            return

        print(f"Total Issues: {len(self.errors) + len(self.warnings)}", file=out)
        print(f"Critical Errors: {self._critical_error_count}", file=out)
        print(f"Warnings: {len(self.warnings)}", file=out)
        print(file=out)

        if self._error_counts:
            counts = sorted(self._error_counts.items(), key=lambda x: x[0].value)
            print(tabulate([[c.value, n] for c, n in counts],
                           headers=['Category', 'Count'], tablefmt='simple'), file=out)
            print(file=out)

        print(self.format_summary(), file=out)
        print("=" * 60, file=out)

    def export_to_dict(self) -> Dict:
        """
        Export errors to dictionary format for serialization.

        Returns:
            Dictionary containing all error information
        """
        return {
            'summary': {
                'total_issues': len(self.errors) + len(self.warnings),
                'critical_errors': self._critical_error_count,
                'warnings': len(self.warnings),
                'error_counts': {cat.value: count for cat, count in self._error_counts.items()}
            },
            'errors': [
                {
                    'category': issue.category.value,
                    'message': issue.message,
                    'stage': issue.stage,
                    'critical': issue.critical,
                    'timestamp': issue.timestamp.isoformat(),
                    'context': issue.context
                }
                for issue in self.errors
            ],
            'warnings': [
                {
                    'category': issue.category.value,
                    'message': issue.message,
                    'stage': issue.stage,
                    'timestamp': issue.timestamp.isoformat(),
                    'context': issue.context
                }
                for issue in self.warnings
            ]
        }
