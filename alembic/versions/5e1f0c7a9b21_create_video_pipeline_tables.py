"""Create video pipeline tables

Revision ID: 5e1f0c7a9b21
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5e1f0c7a9b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid(name, *args, **kwargs):
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kwargs)


def _status(name='status', default=None):
    # Enums are stored by value in plain VARCHAR columns
    return sa.Column(name, sa.String(32), nullable=False, server_default=default)


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # -- 1. Children (owned by the surrounding application) --
    op.create_table(
        'children',
        _uuid('id', primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('age', sa.Integer, nullable=True),
        sa.Column('pronouns', sa.String(50), nullable=True),
        sa.Column('child_description', sa.Text, nullable=True),
        sa.Column('sidekick_description', sa.Text, nullable=True),
        sa.Column('primary_interest', sa.String(255), nullable=True),
        _created_at(),
    )

    # -- 2. Projects and prompts --
    op.create_table(
        'story_projects',
        _uuid('id', primary_key=True),
        _uuid('child_id', sa.ForeignKey('children.id'), nullable=False),
        sa.Column('template_type', sa.String(50), nullable=False),
        sa.Column('template_version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('story_variables', sa.JSON, nullable=False),
        _status(default='drafting'),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_story_projects_child_id', 'story_projects', ['child_id'])

    op.create_table(
        'prompts',
        _uuid('id', primary_key=True),
        _uuid('project_id', sa.ForeignKey('story_projects.id'), nullable=False),
        sa.Column('slot_key', sa.String(100), nullable=False),
        _status('asset_kind'),
        sa.Column('prompt_text', sa.Text, nullable=False),
        sa.Column('safe_zone', sa.String(50), nullable=True),
        _status(default='pending'),
        sa.Column('revision', sa.Integer, nullable=False, server_default='1'),
        _created_at(),
        sa.UniqueConstraint('project_id', 'slot_key', 'revision', name='uq_prompts_slot_revision'),
    )
    op.create_index('ix_prompts_project_slot', 'prompts', ['project_id', 'slot_key'])

    # -- 3. Assets and generation jobs --
    op.create_table(
        'assets',
        _uuid('id', primary_key=True),
        _uuid('project_id', sa.ForeignKey('story_projects.id'), nullable=True),
        sa.Column('slot_key', sa.String(100), nullable=True),
        _uuid('prompt_id', sa.ForeignKey('prompts.id'), nullable=True),
        _status('kind'),
        _status(default='pending_review'),
        sa.Column('url', sa.String(1000), nullable=True),
        sa.Column('safe_zone', sa.String(50), nullable=True),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('tags', sa.JSON, nullable=False),
        sa.Column('provider_metadata', sa.JSON, nullable=False),
        sa.Column('reusable', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('library_tag', sa.String(100), nullable=True),
        _uuid('source_asset_id', sa.ForeignKey('assets.id'), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('reviewed_by', sa.String(255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_assets_project_slot', 'assets', ['project_id', 'slot_key'])
    op.create_index('ix_assets_library_tag', 'assets', ['library_tag'])

    op.create_table(
        'asset_generation_jobs',
        _uuid('id', primary_key=True),
        _uuid('project_id', sa.ForeignKey('story_projects.id'), nullable=False),
        sa.Column('slot_key', sa.String(100), nullable=False),
        _uuid('prompt_id', sa.ForeignKey('prompts.id'), nullable=True),
        _uuid('asset_id', sa.ForeignKey('assets.id'), nullable=True),
        _status('asset_kind'),
        _status(default='pending'),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0'),
        sa.Column('celery_task_id', sa.String(255), nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        _created_at(),
        _updated_at(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_asset_generation_jobs_project_slot', 'asset_generation_jobs', ['project_id', 'slot_key'])

    # -- 4. Renders, approved videos and the moderation queue --
    op.create_table(
        'video_generation_jobs',
        _uuid('id', primary_key=True),
        _uuid('project_id', sa.ForeignKey('story_projects.id'), nullable=False),
        sa.Column('template_type', sa.String(50), nullable=False),
        sa.Column('template_version', sa.Integer, nullable=False),
        sa.Column('submitted_by', sa.String(255), nullable=True),
        _status(default='pending'),
        sa.Column('external_render_id', sa.String(255), nullable=True),
        sa.Column('output_url', sa.String(1000), nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('render_payload', sa.JSON, nullable=False),
        sa.Column('conflict_count', sa.Integer, nullable=False, server_default='0'),
        _created_at(),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    # At most one pending/submitted render per project
    op.create_index(
        'uq_video_generation_jobs_in_flight',
        'video_generation_jobs',
        ['project_id'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'submitted')"),
    )
    op.create_index('ix_video_generation_jobs_external_render_id', 'video_generation_jobs', ['external_render_id'])

    op.create_table(
        'child_approved_videos',
        _uuid('id', primary_key=True),
        _uuid('video_job_id', sa.ForeignKey('video_generation_jobs.id'), nullable=False, unique=True),
        _uuid('child_id', sa.ForeignKey('children.id'), nullable=False),
        _status('approval_status', default='pending_review'),
        sa.Column('video_url', sa.String(1000), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('duration_seconds', sa.Integer, nullable=True),
        sa.Column('template_type', sa.String(50), nullable=False),
        sa.Column('reviewed_by', sa.String(255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_child_approved_videos_child_id', 'child_approved_videos', ['child_id'])

    op.create_table(
        'moderation_queue',
        _uuid('id', primary_key=True),
        _uuid('approved_video_id', sa.ForeignKey('child_approved_videos.id'), nullable=False, unique=True),
        sa.Column('priority', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('priority_rank', sa.Integer, nullable=False, server_default='1'),
        _status(default='pending'),
        sa.Column('claimed_by', sa.String(255), nullable=True),
        sa.Column('claim_token', sa.String(64), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decision', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_moderation_queue_status', 'moderation_queue', ['status'])

    # -- 5. Assignments --
    op.create_table(
        'child_video_assignments',
        _uuid('id', primary_key=True),
        _uuid('child_id', sa.ForeignKey('children.id'), nullable=False),
        sa.Column('template_type', sa.String(50), nullable=False),
        _status(default='assigned'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='normal'),
        sa.Column('due_date', sa.Date, nullable=True),
        sa.Column('assigned_by', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        _created_at(),
        _updated_at(),
    )
    # One live (non-rejected) assignment per child and template type
    op.create_index(
        'uq_child_video_assignments_live',
        'child_video_assignments',
        ['child_id', 'template_type'],
        unique=True,
        postgresql_where=sa.text("status <> 'rejected'"),
    )

    # -- 6. Diagnostics --
    op.create_table(
        'pipeline_events',
        _uuid('id', primary_key=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        _uuid('entity_id', nullable=False),
        sa.Column('event', sa.String(50), nullable=False),
        sa.Column('detail', sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index('ix_pipeline_events_entity_id', 'pipeline_events', ['entity_id'])


def downgrade() -> None:
    op.drop_index('ix_pipeline_events_entity_id', table_name='pipeline_events')
    op.drop_table('pipeline_events')
    op.drop_index('uq_child_video_assignments_live', table_name='child_video_assignments')
    op.drop_table('child_video_assignments')
    op.drop_index('ix_moderation_queue_status', table_name='moderation_queue')
    op.drop_table('moderation_queue')
    op.drop_index('ix_child_approved_videos_child_id', table_name='child_approved_videos')
    op.drop_table('child_approved_videos')
    op.drop_index('ix_video_generation_jobs_external_render_id', table_name='video_generation_jobs')
    op.drop_index('uq_video_generation_jobs_in_flight', table_name='video_generation_jobs')
    op.drop_table('video_generation_jobs')
    op.drop_index('ix_asset_generation_jobs_project_slot', table_name='asset_generation_jobs')
    op.drop_table('asset_generation_jobs')
    op.drop_index('ix_assets_library_tag', table_name='assets')
    op.drop_index('ix_assets_project_slot', table_name='assets')
    op.drop_table('assets')
    op.drop_index('ix_prompts_project_slot', table_name='prompts')
    op.drop_table('prompts')
    op.drop_index('ix_story_projects_child_id', table_name='story_projects')
    op.drop_table('story_projects')
    op.drop_table('children')
