"""Issuer discovery over conventional local ports."""

from .engine import DiscoveryEngine, DiscoveryAttempt, DiscoveryOutcome, ProbeResult, ProbeState

__all__ = ['DiscoveryEngine', 'DiscoveryAttempt', 'DiscoveryOutcome', 'ProbeResult', 'ProbeState']
