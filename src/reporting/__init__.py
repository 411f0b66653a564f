"""Pipeline run reporting."""

from reporting.report import PipelineReport, StageResult

__all__ = ['PipelineReport', 'StageResult']
