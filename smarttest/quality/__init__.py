"""Static validation of generated test code."""

from .qa_validator import QualityAssuranceValidator, format_report
from .structure_checker import check_structure

__all__ = ['QualityAssuranceValidator', 'check_structure', 'format_report']
