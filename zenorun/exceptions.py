from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from zenorun.schemas import RunResult


class ZenorunError(Exception):
    pass


class InvalidRequestError(ZenorunError):
    pass


class ProcessError(ZenorunError):
    args_: tuple[str, ...]
    result: 'RunResult | None'

    def __init__(self, message: str, args: Sequence[str], result: 'RunResult | None'):
        super().__init__(message)
        self.args_ = tuple(args)
        self.result = result

    @property
    def output(self) -> str:
        if self.result is None:
            return str(self)
        return (self.result.stdout + self.result.stderr).strip() or str(self)


class ProcessStartError(ProcessError):
    pass


class ProcessFailedError(ProcessError):
    pass


class RunTimeoutError(ProcessError):
    pass


class SyncError(ZenorunError):
    pass


class ProvisioningError(ZenorunError):
    pass


class ConfigurationError(ProvisioningError):
    pass


class ImageBuildError(ProvisioningError):
    pass
