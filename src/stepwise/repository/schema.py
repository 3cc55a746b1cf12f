"""
SQLite schema for the job repository.

Tables:
    batch_job_instance            one row per (job_name, job_key)
    batch_job_execution           one row per attempt; optimistic ``version``
    batch_job_execution_params    typed parameters of each attempt
    batch_step_execution          one row per step attempt; counters, ``version``
    batch_job_execution_context   serialized job ExecutionContext
    batch_step_execution_context  serialized step ExecutionContext

The partial unique index ``uq_batch_job_execution_running`` admits at most
one row per job instance in a running status (STARTING, STARTED,
STOPPING). It is what makes "one running execution per instance" hold
across processes sharing the database file.
"""

BATCH_TABLES = {
    "job_instance": "batch_job_instance",
    "job_execution": "batch_job_execution",
    "job_execution_params": "batch_job_execution_params",
    "step_execution": "batch_step_execution",
    "job_execution_context": "batch_job_execution_context",
    "step_execution_context": "batch_step_execution_context",
}

RUNNING_STATUSES = ("STARTING", "STARTED", "STOPPING")

BATCH_DDL = {
    "job_instance": """
        CREATE TABLE IF NOT EXISTS batch_job_instance (
            job_instance_id INTEGER PRIMARY KEY AUTOINCREMENT,
            version INTEGER NOT NULL DEFAULT 0,
            job_name TEXT NOT NULL,
            job_key TEXT NOT NULL,
            UNIQUE (job_name, job_key)
        )
    """,
    "job_execution": """
        CREATE TABLE IF NOT EXISTS batch_job_execution (
            job_execution_id INTEGER PRIMARY KEY AUTOINCREMENT,
            version INTEGER NOT NULL DEFAULT 0,
            job_instance_id INTEGER NOT NULL REFERENCES batch_job_instance(job_instance_id),
            create_time TEXT NOT NULL,
            start_time TEXT,
            end_time TEXT,
            status TEXT NOT NULL,
            exit_code TEXT,
            exit_description TEXT,
            last_updated TEXT
        )
    """,
    "job_execution_idx_instance": """
        CREATE INDEX IF NOT EXISTS idx_batch_job_execution_instance
        ON batch_job_execution(job_instance_id)
    """,
    # At most one running execution per job instance.
    "job_execution_uq_running": """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_batch_job_execution_running
        ON batch_job_execution(job_instance_id)
        WHERE status IN ('STARTING', 'STARTED', 'STOPPING')
    """,
    "job_execution_params": """
        CREATE TABLE IF NOT EXISTS batch_job_execution_params (
            job_execution_id INTEGER NOT NULL REFERENCES batch_job_execution(job_execution_id),
            ordinal INTEGER NOT NULL,
            parameter_name TEXT NOT NULL,
            parameter_type TEXT NOT NULL,
            parameter_value TEXT,
            identifying INTEGER NOT NULL,
            PRIMARY KEY (job_execution_id, parameter_name)
        )
    """,
    "step_execution": """
        CREATE TABLE IF NOT EXISTS batch_step_execution (
            step_execution_id INTEGER PRIMARY KEY AUTOINCREMENT,
            version INTEGER NOT NULL DEFAULT 0,
            step_name TEXT NOT NULL,
            job_execution_id INTEGER NOT NULL REFERENCES batch_job_execution(job_execution_id),
            create_time TEXT NOT NULL,
            start_time TEXT,
            end_time TEXT,
            status TEXT NOT NULL,
            commit_count INTEGER NOT NULL DEFAULT 0,
            read_count INTEGER NOT NULL DEFAULT 0,
            filter_count INTEGER NOT NULL DEFAULT 0,
            write_count INTEGER NOT NULL DEFAULT 0,
            read_skip_count INTEGER NOT NULL DEFAULT 0,
            write_skip_count INTEGER NOT NULL DEFAULT 0,
            process_skip_count INTEGER NOT NULL DEFAULT 0,
            rollback_count INTEGER NOT NULL DEFAULT 0,
            exit_code TEXT,
            exit_description TEXT,
            last_updated TEXT
        )
    """,
    "step_execution_idx_job": """
        CREATE INDEX IF NOT EXISTS idx_batch_step_execution_job
        ON batch_step_execution(job_execution_id, step_name)
    """,
    "job_execution_context": """
        CREATE TABLE IF NOT EXISTS batch_job_execution_context (
            job_execution_id INTEGER PRIMARY KEY REFERENCES batch_job_execution(job_execution_id),
            serialized_context TEXT
        )
    """,
    "step_execution_context": """
        CREATE TABLE IF NOT EXISTS batch_step_execution_context (
            step_execution_id INTEGER PRIMARY KEY REFERENCES batch_step_execution(step_execution_id),
            serialized_context TEXT
        )
    """,
}


def create_batch_tables(conn) -> None:
    """
    Create all job repository tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in BATCH_DDL.items():
        conn.execute(ddl)
    conn.commit()
