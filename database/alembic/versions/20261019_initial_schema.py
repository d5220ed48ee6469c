"""users, lessons, support_tickets initial schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""
from alembic import op

revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            email VARCHAR(255) UNIQUE NOT NULL,
            password_hash VARCHAR(255),
            phone VARCHAR(20),
            first_name VARCHAR(100) NOT NULL,
            last_name VARCHAR(100) NOT NULL,
            role VARCHAR(20) NOT NULL DEFAULT 'learner'
                CONSTRAINT ck_users_role CHECK (role IN ('learner', 'manager', 'support', 'admin')),
            company VARCHAR(255),
            team VARCHAR(255),
            is_active BOOLEAN DEFAULT TRUE,
            avatar_url TEXT,
            timezone VARCHAR(50) DEFAULT 'Asia/Jerusalem',
            lesson_progress JSONB NOT NULL DEFAULT '{}'::jsonb,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_activity_date DATE,
            total_lessons_completed INTEGER NOT NULL DEFAULT 0,
            badges_earned TEXT[] NOT NULL DEFAULT '{}',
            version INTEGER NOT NULL DEFAULT 0,
            preferences JSONB NOT NULL DEFAULT '{"program_type": "full_access", "chat_terms_accepted": false}'::jsonb,
            last_login TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_users_current_streak CHECK (current_streak >= 0),
            CONSTRAINT ck_users_longest_streak CHECK (longest_streak >= current_streak)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_users_role ON users(role)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_users_email ON users(email)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_users_is_active ON users(is_active)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS lessons (
            id UUID PRIMARY KEY,
            title VARCHAR(255) NOT NULL,
            description TEXT,
            vimeo_video_id VARCHAR(100),
            video_duration INTEGER,
            thumbnail_url TEXT,
            category VARCHAR(100),
            tags TEXT[] DEFAULT '{}',
            lesson_topics TEXT[] DEFAULT '{}',
            key_points TEXT[] DEFAULT '{}',
            support_materials JSONB NOT NULL DEFAULT '[]'::jsonb,
            chapter_order INTEGER NOT NULL DEFAULT 0,
            lesson_number INTEGER NOT NULL DEFAULT 1,
            scheduled_date DATE,
            is_published BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_lessons_category ON lessons(category)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_lessons_scheduled_date ON lessons(scheduled_date)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_lessons_is_published ON lessons(is_published)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_lessons_chapter_lesson ON lessons(chapter_order, lesson_number)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS support_tickets (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(255) NOT NULL,
            description TEXT NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'open',
            priority VARCHAR(20) NOT NULL DEFAULT 'medium',
            messages JSONB NOT NULL DEFAULT '[]'::jsonb,
            assigned_to UUID REFERENCES users(id),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_support_tickets_status CHECK (status IN ('open', 'in_progress', 'resolved', 'closed')),
            CONSTRAINT ck_support_tickets_priority CHECK (priority IN ('low', 'medium', 'high', 'urgent'))
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_support_tickets_user_id ON support_tickets(user_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_support_tickets_status ON support_tickets(status)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_support_tickets_assigned_to ON support_tickets(assigned_to)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS support_tickets")
    op.execute("DROP TABLE IF EXISTS lessons")
    op.execute("DROP TABLE IF EXISTS users")
