#!/usr/bin/env python3
"""
Celery tasks for split readers
Reads one split into parquet part files while publishing progress
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from chunkread.celery_config import celery_app
from chunkread.config import ReaderConfig
from chunkread.database_utils import (
    DRIVER_ERRORS,
    create_data_source_connection,
    get_current_instance_name,
)
from chunkread.enhanced_logger import logger, redact_sensitive_data
from chunkread.reader import ChunkedReader
from chunkread.split import Split

DEFAULT_BATCH_SIZE = 100000


def export_split(split_data: Dict[str, Any], table: str,
                 connection_config: Dict[str, Any], output_dir: str,
                 reader_config: Optional[Dict[str, Any]] = None,
                 fields: Optional[Sequence[str]] = None,
                 filter_predicate: Optional[str] = None,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 progress_callback: Optional[Callable[[float, int], None]] = None,
                 connection_factory: Callable = create_data_source_connection,
                 column_provider=None) -> Dict[str, Any]:
    """
    Read one split and write it as parquet part files

    Args:
        split_data: Split as produced by Split.to_dict()
        table: OWNER.NAME of the table being read
        connection_config: Passed to connection_factory
        output_dir: Directory receiving the part files
        reader_config: Mapping accepted by ReaderConfig.from_dict()
        fields: Columns to read; None reads every supported column
        filter_predicate: Optional user predicate
        batch_size: Rows per part file
        progress_callback: Called with (ratio_complete, rows_written) after each part file
        connection_factory: Returns a live connection for connection_config
        column_provider: Column metadata provider; defaults to the data dictionary

    Returns:
        dict: split_id, rows, files and the final (lower-bound) ratio
    """
    split = Split.from_dict(split_data)
    config = ReaderConfig.from_dict(reader_config)
    config.validate_consistent_read()

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    connection = connection_factory(connection_config)
    try:
        try:
            instance_name = get_current_instance_name(connection)
            logger.info(f"Split {split.split_id} connected via "
                        f"{redact_sensitive_data(connection_config.get('dsn', ''))} "
                        f"to the instance \"{instance_name}\"")
        except DRIVER_ERRORS as exc:
            logger.warning(f"Could not determine the database instance name: {exc}")

        rows_written = 0
        files: List[str] = []
        with ChunkedReader(split, connection, table, config=config, fields=fields,
                           filter_predicate=filter_predicate,
                           column_provider=column_provider) as reader:
            for part_number, batch in enumerate(reader.iter_batches(batch_size)):
                part_file = output_path / f"split_{split.split_id:05d}_part_{part_number:04d}.parquet"
                batch.write_parquet(part_file, compression="snappy")
                rows_written += batch.height
                files.append(str(part_file))

                if progress_callback is not None:
                    progress_callback(reader.ratio_complete(), rows_written)

            ratio = reader.ratio_complete()
    finally:
        connection.close()

    return {
        'split_id': split.split_id,
        'rows': rows_written,
        'files': files,
        'ratio': ratio,
    }


@celery_app.task(bind=True, name='chunkread.tasks.read_split')
def read_split(self, split_data, table, connection_config, output_dir,
               reader_config=None, fields=None, filter_predicate=None,
               batch_size=DEFAULT_BATCH_SIZE):
    """
    Asynchronous task reading one split

    Progress is published as PROGRESS state with the ratio of blocks processed.
    """
    split_id = split_data.get('split_id', 0)
    logger.info(f"Starting split read {split_id} (Celery task: {self.request.id})")

    def report_progress(ratio, rows):
        self.update_state(
            state='PROGRESS',
            meta={
                'split_id': split_id,
                'ratio': ratio,
                'rows': rows
            }
        )

    try:
        return export_split(
            split_data, table, connection_config, output_dir,
            reader_config=reader_config,
            fields=fields,
            filter_predicate=filter_predicate,
            batch_size=batch_size,
            progress_callback=report_progress
        )
    except Exception as exc:
        logger.split_failed(str(exc))
        raise
