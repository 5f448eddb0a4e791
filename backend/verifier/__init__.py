"""
Trust verification engine.
Scores companies and job postings against registry and network sources,
with caching, rate limiting, duplicate detection and async job tracking.
"""
