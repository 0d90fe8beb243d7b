REPO_MOUNT = '/input'
WORK_MOUNT = '/work'

# single-service projects
EXPOSE_PORT = 5001
TARGET_PORT = 5000

# polyglot projects
UI_CONTAINER_PORT = 3000
API_CONTAINER_PORT = 8000

UNKNOWN_EXIT_CODE = -1
USAGE_EXIT_CODE = 2
FAILURE_EXIT_CODE = 1

ENTRYPOINT_SCRIPT = 'runner.sh'
CONTAINER_NAME_PREFIX = 'zenorun-'
