"""Durable job queue backed by the relational store."""

from pulse_core.queue.job_store import JobStore

__all__ = ["JobStore"]
