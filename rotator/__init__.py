"""
Poster rotation engine package.

Modules (leaves first):
    state        - constants, imports nothing from the package
    models       - value types shared with providers and catalogs
    helpers      - executor, naming, touch/format helpers
    image        - format detection, header-only dimensions, atomic image writes
    fingerprint  - byte-sampled 64-bit hash and duplicate test
    language     - original-language heuristic
    classifier   - candidate admission list
    resolver     - item -> pool directory / artwork destination
    catalog      - catalog adapters (Jellyfin, Emby, filesystem)
    topup        - provider queries, downloads, snapshot fallback
    selector     - member listing, next-member choice, promotion, lock
    orchestrator - one pass over every eligible item
    pools        - management operations over existing pools

Nothing is re-exported here so low-level modules (network_utils imports
rotator.state) never pull in the whole package.
"""
