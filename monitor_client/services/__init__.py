"""Client-side domain state layer for the service monitor dashboard.

- repository.py (one REST round trip per entity kind x verb)
- sync_cache.py (keyed cache with on-demand and polled freshness)
- mutations.py (write + settle: invalidate or patch affected cache keys)
- alert_lifecycle.py (resolve/verify state machine)
- derived_views.py (health counters, alert partition, search filter)
"""

# Import side-effects are intentionally avoided here; modules are imported by the session state as needed.
