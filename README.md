# fplusdb

A SQLAlchemy-based data layer for allocator, allocation-amount, application,
autoallocation and comparable-application records. It also has a cron
scheduler with a seconds field, and the checks that decide whether a request
comes from a verifier of an allocator.

## Installation

```
pip install .
```

To run the tests, install the test extras:

```
pip install ".[test]"
pytest
```

The package uses SQLAlchemy but does not install a database driver. SQLite
works with the standard library. For PostgreSQL you need a driver that
SQLAlchemy supports, installed separately.

## Configuration

`fplusdb.connection.database_url()` takes the connection URL from the
environment:

- `DB_URL`: a full SQLAlchemy URL. If it is set, nothing else is read.
- `DB_CONNECT_PARAMS_JSON`: read when `DB_URL` is not set. It must be a JSON
  object with the string fields `engine`, `username`, `password`, `host` and
  `dbname`, and an integer `port` from 0 to 65535. Invalid content raises
  `ValueError`. The password is percent-encoded in the URL built from it
  (`fplusdb.types.parse_connect_params` and `DbConnectParams.to_url`).
- `DB_OPTIONS`: an optional query string, placed after `?` in that URL.

If neither `DB_URL` nor `DB_CONNECT_PARAMS_JSON` is set,
`fplusdb.config.get_env_or_throw` logs an error and the process exits with
status 1.

`fplusdb.connection.init()` loads a `.env` file, searched for from the working
directory upwards, into the environment.

## Connecting

```python
from fplusdb import connection
from fplusdb.models import Base

connection.init()
engine = connection.setup()  # or connection.setup("sqlite:///fplus.db")
Base.metadata.create_all(engine)  # create the tables if they do not exist yet
```

`setup(url=None)` opens one connection as a check, then keeps the engine as
the one that every query function shares. If a `postgres://` URL is given, it
is rewritten to `postgresql://`. `get_database_connection()` returns that
engine. Before `setup` has run, it raises `DatabaseError`.
`setup_test_environment()` runs `init()` and then `setup()`.

Every error from the data layer is raised as
`fplusdb.connection.DatabaseError`. That covers records that were not found,
no connection, and database failures.

## Tables

`fplusdb.models` defines `Allocator`, `AllocationAmount`, `Application`,
`Autoallocation` and `ComparableApplication` on the declarative `Base`. On
PostgreSQL, `Allocator.data_types` is a string array and the comparable data
is JSONB. On other databases both are stored as JSON.
`Autoallocation.evm_wallet_address` holds an `AddressWrapper`.
`ComparableApplication.application` holds an `ApplicationComparableData`.

## Allocators

```python
from fplusdb import allocators

allocator = allocators.create_or_update_allocator(
    "test_owner", "test_repo",
    1234, "0x1234567890", "test_verifier_1, test_verifier_2", 2,
    "Fixed", "0x1234567890", "common_ui, smart_contract_allocator",
    ["Public Open Dataset (Research/Non-Profit)", "Public Open Commercial/Enterprise"],
    "5+", "5+", "Allocators/123.json", "f1owcbryeqlq3vl7kydzax7r75sbtyvgpnny7fswy",
)
allocators.get_allocator("test_owner", "test_repo")
allocators.update_allocator_threshold("test_owner", "test_repo", 3)
allocators.delete_allocator("test_owner", "test_repo")
```

`create_or_update_allocator` handles its fields as follows:

- Fields passed as `None` keep their stored value.
- The allocation amount type is always overwritten. It is stored in lower
  case, and `None` clears it.
- The client contract address is always overwritten. An empty string or
  `None` is stored as no address.

`update_allocator_installation_ids` does nothing when the allocator does not
exist. `update_allocator_threshold` and `delete_allocator` raise
`DatabaseError("Allocator not found")` when it does not exist.
`get_allocators()` returns every allocator.

## Allocation amounts

`fplusdb.allocation_amounts` has these functions:

- `get_allocation_amounts()`
- `get_allocation_quantity_options(allocator_id)`, which returns the option
  strings
- `create_allocation_amount(allocator_id, allocation_amount)`
- `delete_allocation_amounts_by_allocator_id(allocator_id)`

If the insert in `create_allocation_amount` fails, the error is logged and the
function returns `None` instead of raising.

## Applications

```python
from fplusdb import applications

applications.create_application(
    "client-id", "test_owner", "test_repo", 1, 10, '{"k": 1}', "apps/client.json", None
)
applications.merge_application_by_pr_number("test_owner", "test_repo", 1)
applications.get_merged_applications("test_owner", "test_repo")
```

A `pr_number` of 0 marks the merged version of an application. Rows with any
other `pr_number` are still in a pull request.

- `get_applications()` returns, for each (owner, repo, id), the row with the
  highest PR number.
- `get_merged_applications(owner, repo)` and `get_active_applications(owner,
  repo)` filter by substring of owner and repo, and sort by owner and then
  repo. Giving `repo` without `owner` raises `DatabaseError`.
- `get_application(id, owner, repo, pr_number=None)` returns the matching row
  with the highest PR number.
- `get_application_by_pr_number` and `get_application_by_issue_number` return
  a single row or raise `DatabaseError`.
- `merge_application_by_pr_number` handles the merged row as follows:
  - If a merged row already exists, it copies the pull request's file and SHA
    into it.
  - Otherwise it creates the merged row from the pull request's row.
  - In both cases it then deletes the pull request's row.
- `update_application` replaces the file. It stores the given `sha`, or the
  git blob SHA of the file if no `sha` is given. It keeps `path` unless a new
  one is given, and always overwrites the client contract address.
- `create_application` stores the git blob SHA of the file.
  `git_blob_sha(content)` computes that SHA on its own.
- `delete_application`, `get_applications_by_client_id(id)` and
  `get_distinct_applications_by_clients_addresses(ids)` are also available.
  The last one returns one row per ID.

## Autoallocations

`fplusdb.autoallocations` accepts an address in any of three forms: an
`AddressWrapper`, a checksummed `0x` string, or 20 raw bytes.

`create_or_update_autoallocation(address, days)` records an allocation with
the current time in these cases:

- the wallet is new, or
- the last allocation recorded for the wallet is at least `days` days old.

It returns the number of rows written, which is 1 or 0. It works on
PostgreSQL and SQLite. On any other backend it raises `DatabaseError`.

The module also has `get_autoallocation`, `get_last_client_autoallocation` and
`delete_autoallocation`. `get_last_client_autoallocation` returns a
timezone-aware datetime, or `None`.

## Comparable applications

`fplusdb.comparable_applications.create_comparable_application(client_address,
data)` stores an `ApplicationComparableData`.

`get_comparable_applications()` returns the rows where either `project_desc`
or `stored_data_desc` is longer than 40 characters.

## Addresses

`fplusdb.types.parse_checksummed_address(value)` accepts a `0x`-prefixed
20-byte hex address whose letter case matches its checksum. Any other input
raises `AddressError`, which is a `ValueError`.

`checksum_address(raw)` returns the checksummed form of 20 raw bytes.
`AddressWrapper(raw).to_checksum()` returns the same string.

## Scheduling

```python
from fplusdb.schedule import CronSchedule, run_cron
from datetime import datetime, timezone

schedule = CronSchedule("0 0 0,4,8,12,16,20 * * * *")
next_time = next(schedule.upcoming(datetime.now(timezone.utc)))
```

An expression has these fields, in order: seconds, minutes, hours, day of
month, month (1-12 or `JAN`-`DEC`), day of week (1-7 with Sunday as 1, or
`SUN`-`SAT`), and an optional year (1970-2100).

A field accepts `*`, `?`, lists, ranges and `/` steps. An expression that
cannot be parsed raises `CronError`.

`upcoming(after)` yields the times strictly after `after`, in order.

`run_cron(expression, task)` sleeps until each upcoming time and then calls
`task`. Errors raised by `task` are logged and the loop goes on. If the
expression is invalid, `run_cron` logs the error and returns. It also returns
when the schedule has no further times.

## Verifier authorisation

```python
from fplusdb.verifier_auth import AuthError, authorize_verifier

try:
    query = authorize_verifier(
        "owner=test_owner&repo=test_repo&github_username=alice",
        "Bearer token",
    )
except AuthError as err:
    print(err.status, err.message)
```

The query string must contain `owner`, `repo` and `github_username`. The
`Authorization` value is optional.

By default, the token's GitHub login is read with `fetch_github_login`, which
sends a GET request to `https://api.github.com/user`. You can pass any other
callable that takes the token as `fetch_login`.

The request is refused in these cases:

| Case | Status |
| --- | --- |
| Query string malformed or missing a field | 400 |
| `github_username` differs from the token's login, or a token is absent while a username is given | 400 |
| GitHub rejects the token | 401 |
| The allocator lists verifiers and the user is not among them (compared case-insensitively) | 401 |

If the allocator cannot be read from the database, the failure is logged and
the request is let through. On success, the function returns the parsed
`RepoQuery`.

## What this package does not do

It has no HTTP server or routes, and no command-line program. Apart from the
authorisation check, it does not implement the application workflow that
calls these functions: proposals, approvals, KYC, GitHub repository updates
and blockchain queries.

It does not create or migrate the schema. Use `Base.metadata.create_all` or
your own migrations.