import pluggy

hookimpl = pluggy.HookimplMarker("git_push")
