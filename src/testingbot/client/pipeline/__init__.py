"""The run lifecycle shared by every product."""

from testingbot.client.pipeline.events import EventBus
from testingbot.client.pipeline.runner import PipelineResult, TestRunPipeline

__all__ = ["EventBus", "PipelineResult", "TestRunPipeline"]
