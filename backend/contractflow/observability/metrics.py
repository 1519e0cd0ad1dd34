"""Prometheus metrics for ContractFlow.

Exposed on /metrics by the observability router.
"""

from prometheus_client import Counter, Histogram

# Contract parsing metrics
contracts_parsed_total = Counter(
    "contractflow_contracts_parsed_total",
    "Total number of contract documents parsed",
    ["source", "status"]  # source: eml|addendum|original_contract, status: success|error
)

contract_items_extracted = Histogram(
    "contractflow_contract_items_extracted",
    "Number of order items extracted per parsed document",
    ["source"],
    buckets=[0, 5, 10, 25, 50, 100, 250, 500]
)

# Addendum page fetch metrics
addendum_fetch_total = Counter(
    "contractflow_addendum_fetch_total",
    "Total addendum page fetches",
    ["status"]  # status: success|error|timeout
)

addendum_fetch_duration_seconds = Histogram(
    "contractflow_addendum_fetch_duration_seconds",
    "Time spent fetching addendum pages in seconds",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Spreadsheet generation
spreadsheets_generated_total = Counter(
    "contractflow_spreadsheets_generated_total",
    "Total spreadsheets generated from order items",
)

# Order approval workflow
approval_stage_transitions_total = Counter(
    "contractflow_approval_stage_transitions_total",
    "Order approval stage transitions",
    ["from_stage", "to_stage"]
)

# Totals validation
items_total_mismatches_total = Counter(
    "contractflow_items_total_mismatches_total",
    "Parsed contracts whose items total does not match the grand total",
)
