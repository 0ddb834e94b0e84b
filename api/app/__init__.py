"""
tmux-chat-bridge API application package
"""
