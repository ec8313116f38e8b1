"""Starter .diffsync.toml template."""

DEFAULT_TOML = """\
# diffsync configuration
version = "1.0"

[refresh]
debounce_ms = 150          # quiet period before a non-forced refresh
min_interval_ms = 400      # minimum spacing between completed refreshes
poll_interval_s = 2.0      # backstop poll while watching the working tree
ignore_window_ms = 500     # ignore watcher events right after stage/unstage

[diff]
max_lines_per_file = 10000
default_scope = "all"      # all | staged | unstaged

[status]
untracked_max_bytes = 1000000

[git]
# executable = "git"
# gh_executable = "gh"
# extra_paths = ["/opt/homebrew/bin", "/usr/local/bin"]
timeout_s = 30

[logging]
level = "WARNING"          # DEBUG | INFO | WARNING | ERROR
format = "console"         # console | json
"""
