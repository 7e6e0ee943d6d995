"""
SQL schema for learner statistics. Kept apart from the connection and
operation logic.
"""

TABLE_DDL = {
    "item_stats": """
        CREATE TABLE IF NOT EXISTS item_stats (
            namespace VARCHAR NOT NULL,
            item_id VARCHAR NOT NULL,
            ewma DOUBLE NOT NULL,
            response_count INTEGER NOT NULL,
            stability DOUBLE,
            last_correct_at DOUBLE,
            last_seen_at DOUBLE,
            PRIMARY KEY (namespace, item_id)
        );
    """,
    "item_deadlines": """
        CREATE TABLE IF NOT EXISTS item_deadlines (
            namespace VARCHAR NOT NULL,
            item_id VARCHAR NOT NULL,
            deadline_ms DOUBLE NOT NULL,
            PRIMARY KEY (namespace, item_id)
        );
    """,
    "motor_baselines": """
        CREATE TABLE IF NOT EXISTS motor_baselines (
            provider VARCHAR PRIMARY KEY,
            baseline_ms DOUBLE NOT NULL,
            measured_at TIMESTAMP NOT NULL
        );
    """,
}

TABLE_NAMES = tuple(TABLE_DDL)
