"""Colored STAGE N/M output shared by the deploy pipeline."""

from typing import Optional


class C:
    HEADER  = "\033[95m"
    BLUE    = "\033[94m"
    CYAN    = "\033[96m"
    GREEN   = "\033[92m"
    WARNING = "\033[93m"
    FAIL    = "\033[91m"
    DIM     = "\033[2m"
    ENDC    = "\033[0m"
    BOLD    = "\033[1m"


class StageReporter:
    """Prints consistent STAGE N: description - SUCCESS/FAIL lines."""

    def __init__(self, total: int, verbose: bool = False):
        self.total   = total
        self.current = 0
        self.verbose = verbose

    def start(self, description: str) -> None:
        self.current += 1
        print(
            f"\n{C.HEADER}{C.BOLD}"
            f"{'─' * 80}\n"
            f"STAGE {self.current}/{self.total}: {description}\n"
            f"{'─' * 80}{C.ENDC}"
        )

    def success(self, detail: str = "") -> None:
        label = f"STAGE {self.current}/{self.total}"
        msg   = f" - {detail}" if detail else ""
        print(f"{C.GREEN}{C.BOLD}✅ {label}: SUCCESS{msg}{C.ENDC}")

    def fail(
        self,
        description: str,
        error: Optional[BaseException] = None,
        fix_hint: str = "",
    ) -> None:
        label = f"STAGE {self.current}/{self.total}"
        print(f"{C.FAIL}{C.BOLD}❌ {label}: FAIL - {description}{C.ENDC}")
        if error:
            print(f"{C.FAIL}   Error type   : {type(error).__name__}{C.ENDC}")
            print(f"{C.FAIL}   Error details: {error}{C.ENDC}")
            response = getattr(error, "response", None)
            if isinstance(response, dict):
                code = response.get("Error", {}).get("Code", "n/a")
                msg  = response.get("Error", {}).get("Message", "n/a")
                print(f"{C.FAIL}   AWS Error Code   : {code}{C.ENDC}")
                print(f"{C.FAIL}   AWS Error Message: {msg}{C.ENDC}")
        if fix_hint:
            print(f"{C.WARNING}   Fix: {fix_hint}{C.ENDC}")

    @staticmethod
    def info(msg: str) -> None:
        print(f"{C.CYAN}   ℹ  {msg}{C.ENDC}")

    @staticmethod
    def progress(msg: str) -> None:
        print(f"{C.BLUE}   ⟳  {msg}{C.ENDC}")

    @staticmethod
    def warning(msg: str) -> None:
        print(f"{C.WARNING}   ⚠  {msg}{C.ENDC}")

    def debug(self, msg: str) -> None:
        if self.verbose:
            print(f"{C.DIM}   ·  {msg}{C.ENDC}")


class NullReporter(StageReporter):
    """Swallows output; used when library callers pass no reporter."""

    def __init__(self):
        super().__init__(total=0)

    def start(self, description: str) -> None:
        pass

    def success(self, detail: str = "") -> None:
        pass

    def fail(self, description, error=None, fix_hint="") -> None:
        pass

    @staticmethod
    def info(msg: str) -> None:
        pass

    @staticmethod
    def progress(msg: str) -> None:
        pass

    @staticmethod
    def warning(msg: str) -> None:
        pass

    def debug(self, msg: str) -> None:
        pass
