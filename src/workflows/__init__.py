"""
Workflows module - Pipeline orchestration for fetch / summarize cycles.
"""
from workflows.base import Pipeline, PipelineRequest, PipelineResult
from workflows.news_pipeline import NewsPipeline
from workflows.session import PipelineSession

__all__ = [
    "Pipeline",
    "PipelineRequest",
    "PipelineResult",
    "NewsPipeline",
    "PipelineSession",
]
