"""Export contributors and their origin estimates to CSV."""
import sys
import csv
import logging
from typing import Iterable, Sequence
import psycopg2
from dotenv import load_dotenv
from contributor_origin.config import get_connection_string

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


EXPORT_COLUMNS = [
    'repository', 'login', 'name', 'location', 'contributions',
    'likely_origin_match', 'origin_probability', 'common_timezone',
    'total_samples', 'analyzed_at'
]

EXPORT_QUERY = """
    SELECT r.full_name, gu.login, gu.name, gu.location, rc.contributions,
           cl.likely_origin_match, cl.origin_probability, cl.common_timezone,
           cl.total_samples, cl.analyzed_at
    FROM repository_contributors rc
    JOIN repositories r ON rc.repository_id = r.id
    JOIN github_users gu ON rc.user_id = gu.id
    LEFT JOIN contributor_locations cl
      ON cl.repository_id = rc.repository_id AND cl.user_id = rc.user_id
    ORDER BY r.full_name, rc.contributions DESC
"""


def write_rows(rows: Iterable[Sequence], output_file: str) -> int:
    """Write export rows with a header line.

    Returns:
        Number of data rows written
    """
    row_count = 0
    with open(output_file, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(EXPORT_COLUMNS)
        for row in rows:
            writer.writerow(row)
            row_count += 1
    return row_count


def export_to_csv(output_file: str = "contributor_origins.csv"):
    """Export contributors with their origin estimates to a CSV file.

    Contributors without an estimate are exported with empty estimate columns.

    Args:
        output_file: Path to output CSV file
    """
    try:
        conn = psycopg2.connect(get_connection_string())
        cursor = conn.cursor()
        cursor.execute(EXPORT_QUERY)

        row_count = write_rows(cursor, output_file)
        logger.info(f"Exported {row_count} contributor rows to {output_file}")

        cursor.close()
        conn.close()

    except (psycopg2.Error, OSError) as e:
        logger.error(f"Error exporting database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    output_file = sys.argv[1] if len(sys.argv) > 1 else "contributor_origins.csv"
    export_to_csv(output_file)
