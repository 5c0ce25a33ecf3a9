"""
All SQLAlchemy models re-exported for convenient imports.

Usage:
    from video_pipeline.models import StoryProject, Prompt, Asset, AssetStatus, ...
"""

from video_pipeline.models.child import Child
from video_pipeline.models.project import (
    StoryProject, Prompt, ProjectStatus, PromptStatus, AssetKind,
)
from video_pipeline.models.asset import (
    Asset, AssetGenerationJob, AssetStatus, GenerationJobStatus,
)
from video_pipeline.models.render import (
    VideoGenerationJob, ChildApprovedVideo, ModerationQueueEntry,
    RenderJobStatus, ApprovalStatus, QueueEntryStatus,
)
from video_pipeline.models.assignment import ChildVideoAssignment, AssignmentStatus
from video_pipeline.models.event import PipelineEvent

__all__ = [
    # Inputs owned by the surrounding application
    "Child",
    # Project & prompts
    "StoryProject",
    "Prompt",
    "ProjectStatus",
    "PromptStatus",
    "AssetKind",
    # Assets
    "Asset",
    "AssetGenerationJob",
    "AssetStatus",
    "GenerationJobStatus",
    # Render & moderation
    "VideoGenerationJob",
    "ChildApprovedVideo",
    "ModerationQueueEntry",
    "RenderJobStatus",
    "ApprovalStatus",
    "QueueEntryStatus",
    # Assignments
    "ChildVideoAssignment",
    "AssignmentStatus",
    # Diagnostics
    "PipelineEvent",
]
