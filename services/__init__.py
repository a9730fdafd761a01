"""
Service layer

Helpers the managers build on, none of which decide workflow state:
- AuditService: audit record sink
- CacheService: derived cache with best-effort invalidation
- Grouping: group/de-duplicate fanned-out join rows
- ScorePolicy: review score rules
- OsuApiClient: content provider (beatmapsets and users)
- RefreshWorker: rate-limited bulk refresh against the content provider
"""
