"""SQLite schema for the task store (code-first)."""

import logging

import aiosqlite

from fieldops.core.db_client import get_db_path


logger = logging.getLogger(__name__)


TABLE_SCHEMAS: dict[str, str] = {
    "geofences": """CREATE TABLE IF NOT EXISTS geofences (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        name TEXT NOT NULL,
        description TEXT,
        center_latitude REAL NOT NULL,
        center_longitude REAL NOT NULL,
        radius_meters INTEGER NOT NULL DEFAULT 100 CHECK (radius_meters > 0),
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
    "tasks": """CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        version INTEGER NOT NULL DEFAULT 1,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        priority TEXT NOT NULL DEFAULT 'Medium' CHECK (priority IN ('Low', 'Medium', 'High')),
        assigned_to TEXT,
        status TEXT NOT NULL DEFAULT 'Not Started'
            CHECK (status IN ('Planned', 'Not Started', 'In Progress', 'Paused', 'Completed', 'Pending')),
        start_date TEXT,
        end_date TEXT,
        due_date TEXT,
        original_due_date TEXT,
        forwarded_at TEXT,
        started_at TEXT,
        completed_at TEXT,
        last_pause_at TEXT,
        total_pause_duration_ms INTEGER NOT NULL DEFAULT 0 CHECK (total_pause_duration_ms >= 0),
        estimated_time INTEGER,
        actual_time INTEGER,
        reward REAL NOT NULL DEFAULT 0,
        completion_notes TEXT,
        completion_type TEXT CHECK (completion_type IN ('with_proof', 'without_proof'))
    )""",
    "task_locations": """CREATE TABLE IF NOT EXISTS task_locations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        geofence_id INTEGER REFERENCES geofences(id) ON DELETE SET NULL,
        latitude REAL,
        longitude REAL,
        radius_meters INTEGER CHECK (radius_meters IS NULL OR radius_meters > 0),
        arrival_required INTEGER NOT NULL DEFAULT 1,
        departure_required INTEGER NOT NULL DEFAULT 0,
        location_name TEXT,
        location_address TEXT
    )""",
    "location_events": """CREATE TABLE IF NOT EXISTS location_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        task_location_id INTEGER NOT NULL REFERENCES task_locations(id) ON DELETE CASCADE,
        worker_id TEXT NOT NULL,
        event_type TEXT NOT NULL CHECK (event_type IN ('arrival', 'departure')),
        latitude REAL NOT NULL,
        longitude REAL NOT NULL,
        distance_meters REAL,
        geofence_id INTEGER REFERENCES geofences(id) ON DELETE SET NULL,
        timestamp TEXT NOT NULL
    )""",
    "task_logs": """CREATE TABLE IF NOT EXISTS task_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        worker_id TEXT,
        action TEXT NOT NULL,
        notes TEXT,
        timestamp TEXT NOT NULL
    )""",
}

INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status_due ON tasks (status, due_date)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks (assigned_to)",
    "CREATE INDEX IF NOT EXISTS idx_task_locations_task_id ON task_locations (task_id)",
    "CREATE INDEX IF NOT EXISTS idx_task_locations_geofence_id ON task_locations (geofence_id)",
    "CREATE INDEX IF NOT EXISTS idx_location_events_task_id ON location_events (task_id, event_type)",
    "CREATE INDEX IF NOT EXISTS idx_task_logs_task_id ON task_logs (task_id)",
    "CREATE INDEX IF NOT EXISTS idx_geofences_active ON geofences (is_active)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist."""
    path = get_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(str(path)) as conn:
        await conn.execute("PRAGMA foreign_keys = ON")
        for table_name, ddl in TABLE_SCHEMAS.items():
            await conn.execute(ddl)
            logger.debug("Ensured table", extra={"table": table_name})
        for index_sql in INDEXES:
            await conn.execute(index_sql)
        await conn.commit()

    logger.info("Database schema initialized", extra={"db_path": str(path), "tables": len(TABLE_SCHEMAS)})
