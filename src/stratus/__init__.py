"""
Stratus - resilient cloud infrastructure deployment.

Sub-packages:
- stratus.core: errors, logging, settings
- stratus.execution: retry primitive
- stratus.deploy: conflict-aware deployment orchestrator
- stratus.cli: ``stratus`` command-line interface
"""

__version__ = "0.3.0"
