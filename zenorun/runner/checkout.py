import logging
from pathlib import Path

from zenorun.clients import GitClient
from zenorun.config import config
from zenorun.exceptions import ProcessFailedError, ProcessStartError, SyncError
from zenorun.schemas import CheckoutState

logger = logging.getLogger(__name__)


class RepoSynchronizer:
    git: GitClient
    depth: int

    def __init__(self, git: GitClient, depth: int | None = None):
        self.git = git
        self.depth = depth or config.clone_depth

    async def inspect(self, repo_path: Path) -> CheckoutState:
        if not repo_path.is_dir() or not any(repo_path.iterdir()):
            return CheckoutState.absent
        try:
            status = await self.git.status(repo_path)
        except (ProcessFailedError, ProcessStartError) as e:
            raise SyncError(f'git status failed in {repo_path}:\n{e.output}') from e
        return CheckoutState.dirty if status.strip() else CheckoutState.clean

    async def sync(self, repo_path: Path, url: str, ref: str) -> CheckoutState:
        state = await self.inspect(repo_path)
        if state == CheckoutState.absent:
            logger.info(f'Cloning {url}@{ref} into {repo_path}')
            repo_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                await self.git.clone(url, ref, repo_path, self.depth)
            except (ProcessFailedError, ProcessStartError) as e:
                raise SyncError(f'git clone failed:\n{e.output}') from e
        elif state == CheckoutState.dirty:
            logger.warning(
                f'{repo_path} has uncommitted changes, using the current checkout'
            )
            self.git.runner.warn(
                f'{repo_path} has uncommitted changes, skipping fetch of {ref}'
            )
        else:
            logger.info(f'Updating {repo_path} to {ref}')
            # checked before fetching, a fetch moves the remote-tracking branch
            unpushed = await self.git.has_unpushed_commits(repo_path, ref)
            try:
                await self.git.set_remote_url(repo_path, url)
                await self.git.fetch(repo_path, ref, self.depth)
            except (ProcessFailedError, ProcessStartError) as e:
                raise SyncError(f'git fetch failed:\n{e.output}') from e
            try:
                await self.git.checkout(repo_path, ref)
            except ProcessFailedError:
                logger.info(f'Checkout of {ref} failed, using FETCH_HEAD')
                try:
                    await self.git.checkout_fetch_head(repo_path)
                except (ProcessFailedError, ProcessStartError) as e:
                    raise SyncError(f'git checkout failed:\n{e.output}') from e
            else:
                if unpushed:
                    logger.warning(
                        f'Branch {ref} in {repo_path} has unpushed commits, not updating it'
                    )
                    self.git.runner.warn(
                        f'local branch {ref} has unpushed commits, '
                        'using it without the fetched changes'
                    )
                    return state
                # a local branch stays on its old commit after a shallow fetch
                try:
                    await self.git.reset_to_fetch_head(repo_path)
                except (ProcessFailedError, ProcessStartError) as e:
                    raise SyncError(f'git reset failed:\n{e.output}') from e
        return state
