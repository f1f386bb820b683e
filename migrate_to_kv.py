"""Copy the local JSON collection files into the hosted key-value store.

    python migrate_to_kv.py --data-dir data --mongo-url mongodb+srv://...

Each `<name>.json` is written verbatim under the key `<name>`; rerunning
simply overwrites, so the migration is idempotent.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import click

from database import COLLECTIONS, MongoKVClient

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    migrated: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(COLLECTIONS)


def migrate_collections(data_dir: Path, client) -> MigrationReport:
    report = MigrationReport()
    for name in COLLECTIONS:
        path = Path(data_dir) / f"{name}.json"
        if not path.exists():
            logger.warning(f"Skipping {name}.json (file not found)")
            report.skipped.append(name)
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            client.set(name, data)
        except Exception as e:
            logger.error(f"Error migrating {name}.json: {e}")
            report.failed.append(name)
            continue
        logger.info(f"Migrated {name}.json")
        report.migrated.append(name)
    return report


@click.command()
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), default=Path("data"),
              show_default=True, help="Directory holding the local collection files.")
@click.option("--mongo-url", envvar="DATABASE_URL", default=None, help="Hosted store URL (or DATABASE_URL).")
@click.option("--database", envvar="DATABASE_NAME", default="appdb", show_default=True)
@click.option("--collection", envvar="KV_COLLECTION", default="kv", show_default=True)
def migrate(data_dir: Path, mongo_url: str, database: str, collection: str):
    """Migrate local JSON collections to the hosted store."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    if not mongo_url:
        raise click.ClickException("DATABASE_URL is not set; configure the hosted store first.")

    try:
        client = MongoKVClient(mongo_url, database, collection)
        client.ping()
    except Exception as e:
        raise click.ClickException(f"hosted store unreachable: {e}") from e

    click.echo(f"Migrating {data_dir} -> {database}.{collection}")
    try:
        report = migrate_collections(data_dir, client)
    finally:
        client.close()

    click.echo("Migration summary:")
    click.echo(f"  successful: {len(report.migrated)}")
    click.echo(f"  failed:     {len(report.failed)}")
    click.echo(f"  skipped:    {len(report.skipped)}")
    click.echo(f"  total:      {report.total}")


if __name__ == "__main__":
    migrate()
