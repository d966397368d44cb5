"""Top-level package for the Winner tracker.

Winner logs expenses and bills, times paid work sessions and turns both
into a daily "safe to spend" figure. The primary modules are:

* ``ledger`` – the expense working set, recurring-bill links and totals
* ``work_sessions`` – the work timer and earnings aggregation
* ``safe_to_spend`` – the derived daily guidance figures
* ``controller`` – wires the components around one application state
* ``visualization`` – functions that generate Plotly figures
* ``dashboard`` – a Streamlit app that ties everything together

To run the dashboard from the command line you can execute:

```bash
streamlit run winner_tracker/dashboard.py
```

or ``python run_dashboard.py`` from the repository root.
"""

from . import controller  # noqa: F401  # re-exported for convenience
from . import ledger  # noqa: F401  # re-exported for convenience
from . import safe_to_spend  # noqa: F401  # re-exported for convenience
from . import visualization  # noqa: F401  # re-exported for convenience
from . import work_sessions  # noqa: F401  # re-exported for convenience
# Import dashboard lazily.  Streamlit may not be installed in all
# environments (e.g. during unit testing).
try:
    from . import dashboard  # type: ignore  # noqa: F401
except ModuleNotFoundError:
    dashboard = None  # type: ignore


__all__ = ["controller", "ledger", "safe_to_spend", "visualization", "work_sessions", "dashboard"]
