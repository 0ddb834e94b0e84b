"""
HTTP routers for the tmux-chat-bridge API
"""
