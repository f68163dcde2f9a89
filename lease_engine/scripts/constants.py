#lease_engine\scripts\constants.py

# Job descriptor properties
SERVER_NODE_ID_PROPERTY = "serverNodeId"
COMMAND_PROPERTY = "command"
CMD_EXECUTABLE = "executable"
CMD_ARGUMENTS = "arguments"
IS_HANDLE_PRIVATE_KEY_PROPERTY = "handlePrivateKey"
CLOUDIFY_HOME_PROPERTY = "cloudifyHome"
CLOUD_FOLDER_PROPERTY = "cloudFolder"

# Environment variable handed to scripts
CLOUDIFY_HOME = "CLOUDIFY_HOME"

# Queue layout, relative to the working root
SCRIPTS_FOLDER = "_scripts"
NEW_SCRIPTS_FOLDER = "new"
EXECUTING_SCRIPTS_FOLDER = "executing"

# Status artifact
OUTPUT_FILE_NAME_PREFIX = "output-nodeid-"
STATUS_SUFFIX = "_status.json"
ERROR_MESSAGE_PROPERTY = "exception"
EXIT_STATUS_PROPERTY = "exitStatus"

# One physical host may carry several logical node ids
SERVER_NODE_ID_DELIMITER = "_"

DESCRIPTOR_SUFFIX = ".json"
