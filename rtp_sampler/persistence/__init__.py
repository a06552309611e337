"""Record sources and result sinks."""

from rtp_sampler.persistence.duckdb_sink import DuckDBResultSink, import_json_results
from rtp_sampler.persistence.duckdb_source import DuckDBPoolSource, write_record_table
from rtp_sampler.persistence.json_sink import JsonFileSink, read_result_file
from rtp_sampler.persistence.memory_source import InMemoryPoolSource
from rtp_sampler.persistence.protocols import (
    CandidateLookup,
    NullSink,
    OutputSink,
    PoolFilter,
    PoolSource,
    load_pool,
)

__all__ = [
    "CandidateLookup",
    "DuckDBPoolSource",
    "DuckDBResultSink",
    "InMemoryPoolSource",
    "JsonFileSink",
    "NullSink",
    "OutputSink",
    "PoolFilter",
    "PoolSource",
    "import_json_results",
    "load_pool",
    "read_result_file",
    "write_record_table",
]
