import os

app = "services.provider_sandbox.main:app"
host = "0.0.0.0"
port = int(os.getenv("PORT", "9002"))
# in-memory state: one worker so every request sees the same preferences
workers = 1
loop = "uvloop"  # needs uvicorn[standard]
http = "h11"
log_level = os.getenv("LOG_LEVEL", "info")
