class ExitCodes:
    SUCCESS = 0
    ERROR = 1
    # 2 is used by click for usage errors
    RESTORE_FAILED = 3
