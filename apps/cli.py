# cli.py
import argparse
import asyncio
import logging
import shlex

from apps.client import ChatClient
from auth.provider import AuthError, LocalIdentityProvider
from models.identity import Credentials, Identity
from shared.config import APP_ORIGIN
from shared.routes import chat_id_from_view
from store.memory_store import InMemoryStore

HELP = """commands:
  login <email> <password>     sign in
  logout                       sign out
  whoami                       show the signed-in user and session
  open <path|url>              navigate, e.g. /invite/<chat>/<token> or /chat/<id>
  chats                        list my groups
  create <name> [uid ...]      create a group
  invite                       rotate the invite link of the open chat
  say <text>                   post a message to the open chat
  messages                     show recent messages of the open chat
  rename <name>                rename the open chat (admins)
  quit"""


def local_client() -> ChatClient:
    """In-process store and two demo accounts, for trying the flows offline."""
    provider = LocalIdentityProvider()
    provider.register(Credentials(email="alice@example.com", password="alice"),
                      Identity(user_id="alice", email="alice@example.com", display_name="Alice"))
    provider.register(Credentials(email="bob@example.com", password="bob"),
                      Identity(user_id="bob", email="bob@example.com", display_name="Bob"))
    return ChatClient(provider, InMemoryStore())


async def handle(client: ChatClient, line: str) -> bool:
    args = shlex.split(line)
    if not args:
        return True
    cmd, rest = args[0].lower(), args[1:]
    identity = client.provider.current_identity()

    if cmd in ("quit", "exit", "q"):
        return False
    if cmd == "help":
        print(HELP)
    elif cmd == "login" and len(rest) == 2:
        try:
            who = await client.sign_in(Credentials(email=rest[0], password=rest[1]))
            print(f"signed in as {who.display_name or who.user_id}")
        except AuthError as e:
            print(f"sign-in failed: {e}")
    elif cmd == "logout":
        await client.sign_out()
        print("signed out")
    elif cmd == "whoami":
        print(f"user={identity.user_id if identity else None} view={client.current_view} "
              f"session={client.session.state}")
    elif cmd == "open" and len(rest) == 1:
        target = rest[0]
        if target.startswith(APP_ORIGIN):
            target = target[len(APP_ORIGIN):] or "/"
        view = await client.navigate(target)
        state = client.last_invite
        if state is not None and state.invite.to_view() == target and state.error:
            print(f"{state.error} ({state.recovery.value})")
        print(f"-> {view}")
    elif cmd == "chats":
        if identity is None:
            print("sign in first")
        else:
            for entry in await client.chats.list_user_chats(identity.user_id):
                print(f"{entry.chat_id}  {entry.role.value}")
    elif cmd == "create" and rest:
        if identity is None:
            print("sign in first")
        else:
            chat_id = await client.chats.create_group(identity, rest[0], rest[1:])
            print(chat_id or "could not create group")
    elif cmd == "invite":
        chat_id = chat_id_from_view(client.current_view)
        if identity is None or chat_id is None:
            print("open a chat first")
        else:
            url = await client.chats.generate_invite_link(chat_id, identity)
            if url:
                client.session.set_pending_invite(url)
            print(url or "could not create an invite link")
    elif cmd in ("say", "messages", "rename"):
        chat_id = chat_id_from_view(client.current_view)
        if identity is None or chat_id is None:
            print("open a chat first")
        elif cmd == "say" and rest:
            message_id = await client.chats.send_message(chat_id, identity, " ".join(rest))
            print("sent" if message_id else "could not send")
        elif cmd == "messages":
            for m in await client.chats.list_messages(chat_id, limit=20):
                print(f"{m.sender_name or m.sender}: {m.content}")
        elif cmd == "rename" and rest:
            ok = await client.chats.update_group_info(chat_id, identity, {"name": " ".join(rest)})
            print("renamed" if ok else "could not rename")
        else:
            print(HELP)
    else:
        print(HELP)
    return True


async def main() -> None:
    parser = argparse.ArgumentParser(description="group chat client")
    parser.add_argument("--local", action="store_true", help="use an in-memory store and demo accounts")
    opts = parser.parse_args()

    client = local_client() if opts.local else ChatClient.from_env()
    print("Chat CLI. Type 'help' for commands.\n")
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if not await handle(client, line.strip()):
                break
    finally:
        client.close()


def run() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())


if __name__ == "__main__":
    run()
