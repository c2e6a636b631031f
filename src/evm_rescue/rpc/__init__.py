"""Endpoint pool, result cache, concurrency throttle and retry controller."""
