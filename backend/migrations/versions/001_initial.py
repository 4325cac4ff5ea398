"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the Assessment Attempt Engine:
- assessments, assessment_questions, assessment_batches: exam definitions
- batch_students: audience rosters read by the eligibility check
- questions, question_options: question bank
- assessment_attempts: one row per student attempt with aggregate counters
- assessment_sessions, proctoring_events: live client sessions and audit trail
- attempt_answers: current MCQ answer per (attempt, question)
- coding_submissions: trial runs and final coding submissions

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Assessments Table ─────────────────────────────────────
    op.create_table(
        'assessments',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('start_time', sa.DateTime(), nullable=True),
        sa.Column('end_time', sa.DateTime(), nullable=True),
        sa.Column('shuffle_questions', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shuffle_options', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('allow_backtrack', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('require_webcam', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('require_microphone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('proctoring_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('show_correct_answers', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_submit', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('passing_marks', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )

    # ── Question Bank ─────────────────────────────────────────
    op.create_table(
        'questions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('question_type', sa.String(32), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('tags', postgresql.JSONB(), nullable=True),
    )

    op.create_table(
        'question_options',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('question_id', sa.BigInteger(),
                  sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('option_label', sa.String(8), nullable=False),
        sa.Column('option_text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_question_options_question_id', 'question_options', ['question_id'])

    # ── Assessment Composition & Audience ─────────────────────
    op.create_table(
        'assessment_questions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('assessment_id', sa.BigInteger(),
                  sa.ForeignKey('assessments.id'), nullable=False),
        sa.Column('question_id', sa.BigInteger(),
                  sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('points', sa.Float(), nullable=False, server_default='1'),
        sa.Column('negative_points', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_mandatory', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('section', sa.Text(), nullable=True),
    )
    op.create_index('ix_assessment_questions_assessment_id', 'assessment_questions',
                    ['assessment_id'])

    op.create_table(
        'assessment_batches',
        sa.Column('assessment_id', sa.BigInteger(),
                  sa.ForeignKey('assessments.id'), primary_key=True),
        sa.Column('batch_id', sa.BigInteger(), primary_key=True),
    )

    op.create_table(
        'batch_students',
        sa.Column('batch_id', sa.BigInteger(), primary_key=True),
        sa.Column('student_id', sa.BigInteger(), primary_key=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_batch_students_student_id', 'batch_students', ['student_id'])

    # ── Attempts Table ────────────────────────────────────────
    op.create_table(
        'assessment_attempts',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('assessment_id', sa.BigInteger(),
                  sa.ForeignKey('assessments.id'), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(20), nullable=False, server_default='not_started'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('answered_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_answers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wrong_answers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score_obtained', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('percentage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('time_taken_seconds', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.UniqueConstraint('student_id', 'assessment_id', 'attempt_number',
                            name='uq_attempts_student_assessment_number'),
    )
    op.create_index('ix_attempts_student_assessment', 'assessment_attempts',
                    ['student_id', 'assessment_id'])
    op.create_index('ix_attempts_status', 'assessment_attempts', ['status'])

    # ── Sessions & Proctoring ─────────────────────────────────
    op.create_table(
        'assessment_sessions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('attempt_id', sa.BigInteger(),
                  sa.ForeignKey('assessment_attempts.id'), nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('assessment_id', sa.BigInteger(),
                  sa.ForeignKey('assessments.id'), nullable=False),
        sa.Column('session_token', sa.String(128), nullable=False, unique=True),
        sa.Column('current_round', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('current_question_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('mic_check_status', sa.String(16), nullable=False, server_default='not_run'),
        sa.Column('mic_checked_at', sa.DateTime(), nullable=True),
        sa.Column('camera_check_status', sa.String(16), nullable=False, server_default='not_run'),
        sa.Column('camera_checked_at', sa.DateTime(), nullable=True),
        sa.Column('last_heartbeat_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_sessions_attempt_active', 'assessment_sessions',
                    ['attempt_id', 'is_active'])
    op.create_index('ix_sessions_student_assessment', 'assessment_sessions',
                    ['student_id', 'assessment_id'])

    op.create_table(
        'proctoring_events',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('attempt_id', sa.BigInteger(),
                  sa.ForeignKey('assessment_attempts.id'), nullable=False),
        sa.Column('session_id', sa.BigInteger(),
                  sa.ForeignKey('assessment_sessions.id'), nullable=True),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('video_url', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_proctoring_events_attempt_id', 'proctoring_events', ['attempt_id'])

    # ── Answers & Coding Submissions ──────────────────────────
    op.create_table(
        'attempt_answers',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('attempt_id', sa.BigInteger(),
                  sa.ForeignKey('assessment_attempts.id'), nullable=False),
        sa.Column('assessment_question_id', sa.BigInteger(),
                  sa.ForeignKey('assessment_questions.id'), nullable=False),
        sa.Column('question_id', sa.BigInteger(),
                  sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('selected_option_ids', postgresql.JSONB(), nullable=False,
                  server_default='[]'),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('points_earned', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('time_taken_seconds', sa.Integer(), nullable=True),
        sa.Column('answered_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('attempt_id', 'assessment_question_id',
                            name='uq_attempt_answers_attempt_question'),
    )

    op.create_table(
        'coding_submissions',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('attempt_id', sa.BigInteger(),
                  sa.ForeignKey('assessment_attempts.id'), nullable=False),
        sa.Column('assessment_question_id', sa.BigInteger(),
                  sa.ForeignKey('assessment_questions.id'), nullable=False),
        sa.Column('question_id', sa.BigInteger(),
                  sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('language', sa.String(32), nullable=False),
        sa.Column('source_code', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('tests_passed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tests_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_earned', sa.Float(), nullable=False, server_default='0'),
        sa.Column('max_points', sa.Float(), nullable=False, server_default='0'),
        sa.Column('outputs', postgresql.JSONB(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('is_final_submission', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('submitted_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    )
    op.create_index('ix_coding_submissions_attempt_question', 'coding_submissions',
                    ['attempt_id', 'assessment_question_id'])
    # At most one final submission per (attempt, question)
    op.create_index('uq_coding_submissions_final', 'coding_submissions',
                    ['attempt_id', 'assessment_question_id'], unique=True,
                    postgresql_where=sa.text('is_final_submission'))


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('uq_coding_submissions_final', table_name='coding_submissions')
    op.drop_index('ix_coding_submissions_attempt_question', table_name='coding_submissions')
    op.drop_table('coding_submissions')
    op.drop_table('attempt_answers')
    op.drop_index('ix_proctoring_events_attempt_id', table_name='proctoring_events')
    op.drop_table('proctoring_events')
    op.drop_index('ix_sessions_student_assessment', table_name='assessment_sessions')
    op.drop_index('ix_sessions_attempt_active', table_name='assessment_sessions')
    op.drop_table('assessment_sessions')
    op.drop_index('ix_attempts_status', table_name='assessment_attempts')
    op.drop_index('ix_attempts_student_assessment', table_name='assessment_attempts')
    op.drop_table('assessment_attempts')
    op.drop_index('ix_batch_students_student_id', table_name='batch_students')
    op.drop_table('batch_students')
    op.drop_table('assessment_batches')
    op.drop_index('ix_assessment_questions_assessment_id', table_name='assessment_questions')
    op.drop_table('assessment_questions')
    op.drop_index('ix_question_options_question_id', table_name='question_options')
    op.drop_table('question_options')
    op.drop_table('questions')
    op.drop_table('assessments')
