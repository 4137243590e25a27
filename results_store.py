"""
SQLite storage for accepted parsing results

Every read and write is scoped by an explicit UserContext. The schema is
built from a versioned migration log so older databases are upgraded in
place instead of being patched by hand.
"""
import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from result_filter import AcceptanceOutcome
from task_context import CompletedTask, UserContext

logger = logging.getLogger(__name__)


class ResultsStoreError(Exception):
    """Raised when the results database cannot complete an operation"""


class ResultNotFoundError(ResultsStoreError, LookupError):
    """Raised when a row does not exist or belongs to another user"""


class TaskConflictError(ResultsStoreError):
    """Raised when a task id is already taken by another user"""


SCHEMA_MIGRATIONS = [
    (1, 'create parsing tables', [
        '''CREATE TABLE IF NOT EXISTS parsing_tasks (
            task_id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            task_name TEXT,
            original_query TEXT,
            accepted_count INTEGER NOT NULL DEFAULT 0,
            rejected_count INTEGER NOT NULL DEFAULT 0,
            total_count INTEGER NOT NULL DEFAULT 0,
            completed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )''',
        '''CREATE TABLE IF NOT EXISTS parsing_results (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id TEXT NOT NULL REFERENCES parsing_tasks (task_id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            task_name TEXT,
            original_query TEXT,
            position INTEGER NOT NULL,
            organization_name TEXT NOT NULL,
            email TEXT,
            description TEXT,
            website TEXT,
            source_url TEXT,
            all_emails TEXT,
            parsing_timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP
        )''',
        'CREATE INDEX IF NOT EXISTS idx_parsing_results_owner ON parsing_results (user_id, task_id)',
    ]),
    (2, 'add phone column', [
        'ALTER TABLE parsing_results ADD COLUMN phone TEXT',
    ]),
    (3, 'add nullable country column', [
        'ALTER TABLE parsing_results ADD COLUMN country TEXT',
    ]),
    (4, 'add categories with optional result association', [
        '''CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (user_id, name)
        )''',
        'ALTER TABLE parsing_results ADD COLUMN category_id INTEGER REFERENCES categories (id) ON DELETE SET NULL',
    ]),
    (5, 'per-user statistics view', [
        'DROP VIEW IF EXISTS user_parsing_stats',
        '''CREATE VIEW user_parsing_stats AS
           SELECT user_id,
                  COUNT(*) AS total_results,
                  SUM(CASE WHEN email IS NOT NULL AND TRIM(email) != '' THEN 1 ELSE 0 END) AS contacts_with_email,
                  SUM(CASE WHEN phone IS NOT NULL AND TRIM(phone) != '' THEN 1 ELSE 0 END) AS contacts_with_phone,
                  COUNT(DISTINCT task_id) AS task_count,
                  COUNT(DISTINCT country) AS country_count,
                  MAX(parsing_timestamp) AS latest_parsing
           FROM parsing_results
           GROUP BY user_id''',
    ]),
]

# Columns a user may edit on a saved result
EDITABLE_FIELDS = {
    'organization_name', 'email', 'phone', 'description',
    'country', 'website', 'category_id',
}


@dataclass
class SaveResult:
    """What happened when a task outcome was written"""
    task_id: str
    saved_count: int = 0
    duplicate: bool = False


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class ResultsStore:
    """Persists accepted records and answers per-user queries"""

    def __init__(self, db_path: str = 'parsing_results.db'):
        self.db_path = str(db_path)
        self.migrate()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def migrate(self) -> List[int]:
        """Apply pending schema migrations in order, returns applied versions"""
        conn = self._connect()
        applied = []
        try:
            conn.execute('''CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                description TEXT,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )''')
            done = {row[0] for row in conn.execute('SELECT version FROM schema_migrations')}

            for version, description, statements in SCHEMA_MIGRATIONS:
                if version in done:
                    continue
                with conn:
                    for statement in statements:
                        conn.execute(statement)
                    conn.execute(
                        'INSERT INTO schema_migrations (version, description) VALUES (?, ?)',
                        (version, description)
                    )
                applied.append(version)
                logger.info(f"Applied schema migration {version}: {description}")
        except sqlite3.Error as e:
            raise ResultsStoreError(f"Schema migration failed: {e}") from e
        finally:
            conn.close()

        return applied

    def schema_version(self) -> int:
        conn = self._connect()
        try:
            row = conn.execute('SELECT MAX(version) FROM schema_migrations').fetchone()
            return row[0] or 0
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_accepted(self, task: CompletedTask, user: UserContext,
                      outcome: AcceptanceOutcome) -> SaveResult:
        """Write the accepted records of one task; repeated writes are ignored"""
        conn = self._connect()
        try:
            with conn:
                try:
                    conn.execute(
                        '''INSERT INTO parsing_tasks
                           (task_id, user_id, task_name, original_query,
                            accepted_count, rejected_count, total_count)
                           VALUES (?, ?, ?, ?, ?, ?, ?)''',
                        (task.task_id, user.user_id, task.task_name, task.original_query,
                         outcome.accepted_count, outcome.rejected_count, outcome.total_count)
                    )
                except sqlite3.IntegrityError:
                    owner = conn.execute(
                        'SELECT user_id FROM parsing_tasks WHERE task_id = ?', (task.task_id,)
                    ).fetchone()
                    if owner is not None and owner[0] != user.user_id:
                        raise TaskConflictError(f"Task {task.task_id} belongs to another user")
                    logger.warning(
                        f"Task {task.task_id} already has saved results; ignoring duplicate write"
                    )
                    return SaveResult(task_id=task.task_id, duplicate=True)

                categories = {
                    row[0] for row in conn.execute(
                        'SELECT id FROM categories WHERE user_id = ?', (user.user_id,)
                    )
                }

                rows = []
                for position, record in enumerate(outcome.accepted):
                    data = record.to_dict()
                    category_id = data['category_id'] if data['category_id'] in categories else None
                    rows.append((
                        task.task_id, user.user_id, task.task_name, task.original_query,
                        position, data['organization_name'],
                        _text(data['email']), _text(data['phone']),
                        data['description'] if isinstance(data['description'], str) else None,
                        _text(data['website']), _text(data['source_url']),
                        json.dumps(data['all_emails']),
                        _text(data['country']), category_id,
                    ))

                conn.executemany(
                    '''INSERT INTO parsing_results
                       (task_id, user_id, task_name, original_query, position,
                        organization_name, email, phone, description, website,
                        source_url, all_emails, country, category_id)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                    rows
                )
        except sqlite3.Error as e:
            raise ResultsStoreError(f"Failed to save results for task {task.task_id}: {e}") from e
        finally:
            conn.close()

        logger.info(
            f"Saved {len(rows)} of {outcome.total_count} results for task {task.task_id} "
            f"(user {user.user_id})"
        )
        return SaveResult(task_id=task.task_id, saved_count=len(rows))

    def update_result(self, user: UserContext, result_id: int,
                      updates: Dict[str, Any]) -> Dict[str, Any]:
        """Edit whitelisted fields of a saved result owned by the user"""
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if not updates:
            raise ValueError("No fields to update")

        values = dict(updates)
        if 'organization_name' in values and not _text(values['organization_name']):
            raise ValueError("organization_name cannot be empty")
        for column in ('organization_name', 'email', 'phone', 'country', 'website'):
            if column in values:
                values[column] = _text(values[column])

        conn = self._connect()
        try:
            category_id = values.get('category_id')
            if category_id is not None:
                owned = conn.execute(
                    'SELECT 1 FROM categories WHERE id = ? AND user_id = ?',
                    (category_id, user.user_id)
                ).fetchone()
                if not owned:
                    raise ValueError(f"Unknown category: {category_id}")

            values['updated_at'] = datetime.now().isoformat()
            assignments = ', '.join(f"{column} = ?" for column in values)

            with conn:
                cursor = conn.execute(
                    f"UPDATE parsing_results SET {assignments} WHERE id = ? AND user_id = ?",
                    (*values.values(), result_id, user.user_id)
                )
            if cursor.rowcount == 0:
                raise ResultNotFoundError(f"Result {result_id} not found")

            row = conn.execute('SELECT * FROM parsing_results WHERE id = ?', (result_id,)).fetchone()
            return self._row_to_dict(row)
        finally:
            conn.close()

    def delete_result(self, user: UserContext, result_id: int) -> Dict[str, Any]:
        """Delete a saved result owned by the user and return it"""
        conn = self._connect()
        try:
            row = conn.execute(
                'SELECT * FROM parsing_results WHERE id = ? AND user_id = ?',
                (result_id, user.user_id)
            ).fetchone()
            if row is None:
                raise ResultNotFoundError(f"Result {result_id} not found")

            with conn:
                conn.execute('DELETE FROM parsing_results WHERE id = ?', (result_id,))
            return self._row_to_dict(row)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, user: UserContext, name: str) -> Dict[str, Any]:
        name = _text(name)
        if not name:
            raise ValueError("Category name is required")

        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    'INSERT INTO categories (user_id, name) VALUES (?, ?)',
                    (user.user_id, name)
                )
            row = conn.execute('SELECT * FROM categories WHERE id = ?', (cursor.lastrowid,)).fetchone()
            return dict(row)
        except sqlite3.IntegrityError:
            raise ValueError(f"Category already exists: {name}")
        finally:
            conn.close()

    def list_categories(self, user: UserContext) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            rows = conn.execute(
                'SELECT * FROM categories WHERE user_id = ? ORDER BY name', (user.user_id,)
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def delete_category(self, user: UserContext, category_id: int):
        """Delete a category; results that used it keep existing without one"""
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    'DELETE FROM categories WHERE id = ? AND user_id = ?',
                    (category_id, user.user_id)
                )
            if cursor.rowcount == 0:
                raise ResultNotFoundError(f"Category {category_id} not found")
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _query(self, sql: str, params: tuple) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            return [self._row_to_dict(row) for row in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def get_recent_results(self, user: UserContext, limit: int = 50,
                           offset: int = 0) -> List[Dict[str, Any]]:
        """Most recently saved results first"""
        return self._query(
            '''SELECT * FROM parsing_results WHERE user_id = ?
               ORDER BY parsing_timestamp DESC, task_id, position
               LIMIT ? OFFSET ?''',
            (user.user_id, limit, offset)
        )

    def get_results_for_task(self, user: UserContext, task_id: str) -> List[Dict[str, Any]]:
        """Results of one task in their original display order"""
        return self._query(
            'SELECT * FROM parsing_results WHERE user_id = ? AND task_id = ? ORDER BY position',
            (user.user_id, task_id)
        )

    def get_results_by_task_name(self, user: UserContext, task_name: str) -> List[Dict[str, Any]]:
        return self._query(
            '''SELECT * FROM parsing_results WHERE user_id = ? AND task_name = ?
               ORDER BY parsing_timestamp DESC, task_id, position''',
            (user.user_id, task_name)
        )

    def search_results(self, user: UserContext, search_text: str = '',
                       country: Optional[str] = None, has_email: Optional[bool] = None,
                       limit: int = 50) -> List[Dict[str, Any]]:
        """Free-text search with optional country and email filters"""
        clauses = ['user_id = ?']
        params: List[Any] = [user.user_id]

        if search_text:
            escaped = search_text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
            pattern = f'%{escaped}%'
            clauses.append(
                "(organization_name LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\' "
                "OR email LIKE ? ESCAPE '\\' OR website LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern] * 4)

        if country:
            clauses.append('country = ?')
            params.append(country)

        if has_email is True:
            clauses.append("(email IS NOT NULL AND TRIM(email) != '')")
        elif has_email is False:
            clauses.append("(email IS NULL OR TRIM(email) = '')")

        params.append(limit)
        return self._query(
            f'''SELECT * FROM parsing_results WHERE {' AND '.join(clauses)}
                ORDER BY parsing_timestamp DESC, task_id, position LIMIT ?''',
            tuple(params)
        )

    def get_task_names(self, user: UserContext) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                'SELECT DISTINCT task_name FROM parsing_results WHERE user_id = ? ORDER BY task_name',
                (user.user_id,)
            ).fetchall()
            return [row[0] for row in rows]
        finally:
            conn.close()

    def get_countries(self, user: UserContext) -> List[str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                '''SELECT DISTINCT country FROM parsing_results
                   WHERE user_id = ? AND country IS NOT NULL AND TRIM(country) != ''
                   ORDER BY country''',
                (user.user_id,)
            ).fetchall()
            return [row[0] for row in rows]
        finally:
            conn.close()

    def get_task(self, user: UserContext, task_id: str) -> Optional[Dict[str, Any]]:
        """The recorded task row with its counts, or None"""
        conn = self._connect()
        try:
            row = conn.execute(
                'SELECT * FROM parsing_tasks WHERE task_id = ? AND user_id = ?',
                (task_id, user.user_id)
            ).fetchone()
            return dict(row) if row is not None else None
        finally:
            conn.close()

    def get_task_history(self, user: UserContext, limit: int = 50) -> List[Dict[str, Any]]:
        """Completed tasks with the counts recorded when they were saved"""
        conn = self._connect()
        try:
            rows = conn.execute(
                '''SELECT * FROM parsing_tasks WHERE user_id = ?
                   ORDER BY completed_at DESC, rowid DESC LIMIT ?''',
                (user.user_id, limit)
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def get_user_stats(self, user: UserContext) -> Dict[str, Any]:
        conn = self._connect()
        try:
            row = conn.execute(
                'SELECT * FROM user_parsing_stats WHERE user_id = ?', (user.user_id,)
            ).fetchone()
            analyzed = conn.execute(
                'SELECT COALESCE(SUM(total_count), 0) FROM parsing_tasks WHERE user_id = ?',
                (user.user_id,)
            ).fetchone()[0]
        finally:
            conn.close()

        stats = {
            'user_id': user.user_id,
            'total_results': 0,
            'contacts_with_email': 0,
            'contacts_with_phone': 0,
            'task_count': 0,
            'country_count': 0,
            'latest_parsing': None,
        }
        if row is not None:
            stats.update(dict(row))
        stats['organizations_analyzed'] = analyzed
        return stats

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        data['all_emails'] = json.loads(data.get('all_emails') or '[]')
        return data
