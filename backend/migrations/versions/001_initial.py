"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates all database tables for OA Point:
- users: administrators and students
- tests: test definitions with availability window and proctoring settings
- test_invitations: students invited to each test
- sections / questions: ordered, timed sections and their questions
- attempts: one per (test, student) with score and breakdown
- section_attempts / answers: section visits and upserted answers
- violations: append-only proctoring log

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Users Table ───────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='student'),
        sa.Column('registration_number', sa.String(64), nullable=True, unique=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Tests Table ───────────────────────────────────────────
    op.create_table(
        'tests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('enable_camera', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('enable_full_screen', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('prevent_copy_paste', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('prevent_right_click', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('results_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_tests_created_by', 'tests', ['created_by'])

    op.create_table(
        'test_invitations',
        sa.Column('test_id', sa.String(36),
                  sa.ForeignKey('tests.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('student_id', sa.String(36),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('invited_at', sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Sections & Questions ──────────────────────────────────
    op.create_table(
        'sections',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36),
                  sa.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('time_limit_minutes', sa.Integer(), nullable=False),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False),
    )
    op.create_index('ix_sections_test_id', 'sections', ['test_id'])

    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('section_id', sa.String(36),
                  sa.ForeignKey('sections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_image', sa.Text(), nullable=True),
        sa.Column('question_type', sa.String(16), nullable=False),
        sa.Column('options', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('coding_details', sa.Text(), nullable=True),
        sa.Column('points', sa.Float(), nullable=False, server_default='1'),
    )
    op.create_index('ix_questions_section_id', 'questions', ['section_id'])

    # ── Attempts Table ────────────────────────────────────────
    op.create_table(
        'attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('test_id', sa.String(36),
                  sa.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('current_section_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(16), nullable=False, server_default='IN_PROGRESS'),
        sa.Column('total_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('max_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_breakdown', sa.Text(), nullable=True),
        sa.Column('browser_info', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('test_id', 'student_id', name='uq_attempts_test_student'),
    )

    # Indexes for common query patterns on attempts
    op.create_index('ix_attempts_student_id', 'attempts', ['student_id'])
    op.create_index('ix_attempts_test_id', 'attempts', ['test_id'])
    op.create_index('ix_attempts_status', 'attempts', ['status'])

    op.create_table(
        'section_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36),
                  sa.ForeignKey('attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('section_id', sa.String(36),
                  sa.ForeignKey('sections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('section_index', sa.Integer(), nullable=False),
        sa.Column('section_name', sa.Text(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('attempt_id', 'section_id', name='uq_section_attempts_attempt_section'),
    )

    op.create_table(
        'answers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36),
                  sa.ForeignKey('attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('section_attempt_id', sa.String(36),
                  sa.ForeignKey('section_attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.String(36),
                  sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_type', sa.String(16), nullable=False),
        sa.Column('selected_options', sa.Text(), nullable=True),
        sa.Column('code', sa.Text(), nullable=True),
        sa.Column('language', sa.String(16), nullable=True),
        sa.Column('test_case_results', sa.Text(), nullable=True),
        sa.Column('time_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_answers_attempt_question'),
    )

    # ── Violations Table ──────────────────────────────────────
    op.create_table(
        'violations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36),
                  sa.ForeignKey('attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
    )

    # Index for listing violations by attempt
    op.create_index('ix_violations_attempt_id', 'violations', ['attempt_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_violations_attempt_id', table_name='violations')
    op.drop_table('violations')
    op.drop_table('answers')
    op.drop_table('section_attempts')
    op.drop_index('ix_attempts_status', table_name='attempts')
    op.drop_index('ix_attempts_test_id', table_name='attempts')
    op.drop_index('ix_attempts_student_id', table_name='attempts')
    op.drop_table('attempts')
    op.drop_index('ix_questions_section_id', table_name='questions')
    op.drop_table('questions')
    op.drop_index('ix_sections_test_id', table_name='sections')
    op.drop_table('sections')
    op.drop_table('test_invitations')
    op.drop_index('ix_tests_created_by', table_name='tests')
    op.drop_table('tests')
    op.drop_table('users')
