#!/usr/bin/env python3
"""
Chunk Split Model
Data chunks (contiguous storage regions) and the splits that group them per worker
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from chunkread.errors import ConfigurationError


# Highest row number addressable inside one Oracle block
MAX_ROWS_PER_BLOCK = 32767


@dataclass(frozen=True)
class DataChunk:
    """A contiguous physical region of the source table"""
    id: str
    where_clause: str
    block_count: int
    partition_clause: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'where_clause': self.where_clause,
            'block_count': self.block_count,
            'partition_clause': self.partition_clause,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DataChunk":
        return cls(
            id=str(data['id']),
            where_clause=data['where_clause'],
            block_count=int(data['block_count']),
            partition_clause=data.get('partition_clause', ''),
        )


def partition_clause_for(partition_name: Optional[str], is_subpartition: bool = False) -> str:
    """Render the PARTITION / SUBPARTITION qualifier for a FROM clause"""
    if not partition_name:
        return ""
    keyword = "SUBPARTITION" if is_subpartition else "PARTITION"
    return f' {keyword}("{partition_name}")'


def extent_chunk(data_object_id: int, relative_file_number: int,
                 start_block: int, finish_block: int,
                 partition_name: Optional[str] = None,
                 is_subpartition: bool = False) -> DataChunk:
    """
    Build a chunk covering a rowid block range of one data object

    Args:
        data_object_id: Oracle data object id of the segment
        relative_file_number: Relative datafile number of the extent
        start_block: First block of the range (inclusive)
        finish_block: Last block of the range (inclusive)
        partition_name: (Sub)partition the extent belongs to, if any
        is_subpartition: Whether partition_name names a subpartition

    Returns:
        DataChunk restricted by rowid boundaries
    """
    where_clause = (
        f"(rowid >= dbms_rowid.rowid_create(1, {data_object_id}, {relative_file_number}, {start_block}, 0)"
        f" AND rowid <= dbms_rowid.rowid_create(1, {data_object_id}, {relative_file_number}, "
        f"{finish_block}, {MAX_ROWS_PER_BLOCK}))"
    )
    return DataChunk(
        id=f"{data_object_id}_{relative_file_number}_{start_block}",
        where_clause=where_clause,
        block_count=finish_block - start_block + 1,
        partition_clause=partition_clause_for(partition_name, is_subpartition),
    )


def partition_chunk(partition_name: str, block_count: int,
                    is_subpartition: bool = False) -> DataChunk:
    """Build a chunk covering one whole (sub)partition"""
    return DataChunk(
        id=partition_name,
        where_clause="1=1",
        block_count=block_count,
        partition_clause=partition_clause_for(partition_name, is_subpartition),
    )


@dataclass(frozen=True)
class Split:
    """
    The unit of work assigned to one worker

    Chunk order only affects the order of the emitted SQL blocks.
    total_blocks is computed once, at construction.
    """
    chunks: Tuple[DataChunk, ...]
    split_id: int = 0
    total_blocks: int = field(init=False)

    def __post_init__(self):
        if self.chunks is None:
            raise ConfigurationError("The split does not contain any data-chunks.")

        chunks = tuple(self.chunks)
        if not chunks:
            raise ConfigurationError(f"Split {self.split_id} does not contain any data-chunks.")

        seen = set()
        for chunk in chunks:
            if chunk.block_count < 1:
                raise ConfigurationError(
                    f"Data-chunk {chunk.id} in split {self.split_id} has "
                    f"{chunk.block_count} blocks; at least 1 is required."
                )
            if chunk.id in seen:
                raise ConfigurationError(
                    f"Data-chunk id {chunk.id} appears more than once in split {self.split_id}."
                )
            seen.add(chunk.id)

        object.__setattr__(self, 'chunks', chunks)
        object.__setattr__(self, 'total_blocks', sum(chunk.block_count for chunk in chunks))

    @classmethod
    def of(cls, chunks: Iterable[DataChunk], split_id: int = 0) -> "Split":
        return cls(tuple(chunks), split_id)

    @property
    def number_of_chunks(self) -> int:
        return len(self.chunks)

    def find_chunk_by_id(self, chunk_id: Optional[str]) -> Optional[DataChunk]:
        """Return the chunk with the given id, or None"""
        for chunk in self.chunks:
            if chunk.id == chunk_id:
                return chunk
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'split_id': self.split_id,
            'chunks': [chunk.to_dict() for chunk in self.chunks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Split":
        chunks = data.get('chunks')
        if chunks is None:
            raise ConfigurationError("The split does not contain any data-chunks.")
        return cls(
            tuple(DataChunk.from_dict(chunk) for chunk in chunks),
            int(data.get('split_id', 0)),
        )
