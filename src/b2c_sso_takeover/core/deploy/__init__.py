"""
Deployment Module

Exports:
- run_deployment: Full run (provision keys, prepare and upload policies)
- POLICY_UPLOAD_ORDER: Fixed dependency-ordered policy list
"""

from .policies import POLICY_UPLOAD_ORDER
from .runner import DeploymentRun, RunStage, run_deployment

__all__ = ['POLICY_UPLOAD_ORDER', 'DeploymentRun', 'RunStage', 'run_deployment']
