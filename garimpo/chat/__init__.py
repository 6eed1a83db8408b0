"""
Chat Engine Module

Agent loop, tool dispatch, status narration and event streaming for one
conversation turn. Import from the submodules directly.
"""
