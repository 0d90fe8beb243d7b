from zenorun.runner.checkout import RepoSynchronizer
from zenorun.runner.classify import classify_project
from zenorun.runner.images import ImageProvisioner
from zenorun.runner.orchestrator import Orchestrator

__all__ = ['ImageProvisioner', 'Orchestrator', 'RepoSynchronizer', 'classify_project']
