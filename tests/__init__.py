"""Test package for chat-relay."""
from dotenv import find_dotenv, load_dotenv

# MONGODB_CONNECTION may come from a .env in the project tree
load_dotenv(find_dotenv(usecwd=True))
