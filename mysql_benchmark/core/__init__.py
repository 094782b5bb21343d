"""
Core Package

Controller/worker orchestration for mysql-benchmark.

Modules:
- errors: Exception hierarchy
- schedule: Weighted schedule generation
- parameters: Runtime queries and parameter generators
- query_loader: YAML query file loading
- stats_channel: Unix datagram statistics transport
- aggregator: Statistics merging and run summary
- worker: Worker benchmark loop
- supervisor: Controller state machine
- reporter: Text/CSV report rendering
- log_context: Logging setup
"""
