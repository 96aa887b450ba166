"""
SSE Chat Client Example for Testing
Listens on the event stream, posts messages and runs scripted scenarios
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional, Tuple

import httpx


def parse_sse_block(block: str) -> Optional[Dict[str, Any]]:
    """
    Decode one SSE record (the text between blank-line separators)

    Args:
        block: Raw record text, e.g. 'data: {"type": "connected", ...}'

    Returns:
        Decoded JSON payload, or None for comments and empty records
    """
    data_lines = []
    for line in block.splitlines():
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip(" "))

    if not data_lines:
        return None

    try:
        return json.loads("\n".join(data_lines))
    except json.JSONDecodeError:
        return None


def split_sse_records(buffer: str) -> Tuple[List[str], str]:
    """Split complete records off the front of a buffer, returning the remainder"""
    records = []
    while "\n\n" in buffer:
        block, buffer = buffer.split("\n\n", 1)
        records.append(block)
    return records, buffer


class ChatClient:
    """SSE chat client for testing"""

    def __init__(self, username: str, server_url: str = "http://localhost:8000"):
        self.username = username
        self.server_url = server_url.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.server_url, timeout=httpx.Timeout(10.0, read=None))
        self.client_id: Optional[str] = None
        self.connected = asyncio.Event()
        self.received: List[Dict[str, Any]] = []
        self.running = False

    async def send_message(self, message: str) -> bool:
        """Post a message; prints the server's reasons when it is rejected"""
        try:
            response = await self.client.post("/messages", json={"username": self.username, "message": message})
        except httpx.HTTPError as e:
            print(f"❌ Send failed: {e}")
            return False

        data = response.json()
        if response.status_code == 201:
            print(f"📤 Message sent: {data['data']['message']}")
            return True

        print(f"❌ {data.get('error')}: {', '.join(data.get('details', []))}")
        return False

    async def load_history(self, limit: int = 50) -> List[Dict[str, Any]]:
        response = await self.client.get("/messages/recent", params={"limit": limit})
        response.raise_for_status()
        return response.json()["messages"]

    def handle_event(self, payload: Dict[str, Any]):
        msg_type = payload.get("type")

        if msg_type == "connected":
            self.client_id = payload.get("clientId")
            self.connected.set()
            print(f"✅ Connected with client ID: {self.client_id}")

        elif msg_type == "message":
            data = payload.get("data", {})
            self.received.append(data)
            print(f"📨 [{data.get('timestamp')}] {data.get('username')}: {data.get('message')}")

        else:
            print(f"❓ Unknown event type: {msg_type}")

    async def listen_for_messages(self):
        """Read the event stream until stopped or closed by the server"""
        self.running = True
        try:
            async with self.client.stream("GET", "/events", headers={"Accept": "text/event-stream"}) as response:
                response.raise_for_status()
                buffer = ""
                async for chunk in response.aiter_text():
                    buffer += chunk
                    records, buffer = split_sse_records(buffer)
                    for block in records:
                        payload = parse_sse_block(block)
                        if payload is not None:
                            self.handle_event(payload)
                    if not self.running:
                        break
            print("🔌 Stream closed")
        except httpx.HTTPError as e:
            print(f"❌ Stream error: {e}")

    async def disconnect(self):
        self.running = False
        await self.client.aclose()

    async def run_interactive(self):
        """Run interactive chat session"""
        listen_task = asyncio.create_task(self.listen_for_messages())
        await asyncio.wait_for(self.connected.wait(), timeout=10)

        for message in await self.load_history():
            print(f"🕘 {message['username']}: {message['message']}")

        print("\n🎮 Interactive mode started! Type /quit to leave")
        print("-" * 50)
        try:
            while True:
                user_input = (await asyncio.to_thread(input, f"{self.username}> ")).strip()
                if not user_input:
                    continue
                if user_input == "/quit":
                    break
                await self.send_message(user_input)
        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            listen_task.cancel()
            await self.disconnect()


async def _with_listener(client: ChatClient, body):
    listen_task = asyncio.create_task(client.listen_for_messages())
    try:
        await asyncio.wait_for(client.connected.wait(), timeout=10)
        await body()
        await asyncio.sleep(1)
    finally:
        listen_task.cancel()
        await client.disconnect()


async def scenario_broadcast(server: str):
    """Scenario 1: two listeners receive each other's messages"""
    print("\n🧪 Scenario 1: Broadcast to every listener")
    print("=" * 60)

    alice = ChatClient("alice", server)
    bob = ChatClient("bob", server)

    async def alice_body():
        await alice.send_message("Hello everyone!")

    async def bob_body():
        await asyncio.sleep(0.5)
        await bob.send_message("Hey Alice!")

    await asyncio.gather(_with_listener(alice, alice_body), _with_listener(bob, bob_body))
    print(f"✅ alice received {len(alice.received)}, bob received {len(bob.received)}")


async def scenario_validation(server: str):
    """Scenario 2: markup is escaped and invalid input is rejected"""
    print("\n🧪 Scenario 2: Escaping and validation")
    print("=" * 60)

    client = ChatClient("tester", server)
    await client.send_message('<script>alert("xss")</script>Safe content')
    await client.send_message("   ")
    await client.send_message("x" * 501)
    await client.disconnect()

    bad_name = ChatClient("bad<name>", server)
    await bad_name.send_message("hello")
    await bad_name.disconnect()
    print("✅ Scenario 2 completed")


async def scenario_burst(server: str, count: int = 20):
    """Scenario 3: concurrent posts are all accepted"""
    print("\n🧪 Scenario 3: Concurrent posts")
    print("=" * 60)

    client = ChatClient("burst", server)
    results = await asyncio.gather(*(client.send_message(f"message {i}") for i in range(count)))
    await client.disconnect()
    print(f"✅ {sum(results)}/{count} messages accepted")


async def main():
    """Main function with command line interface"""
    parser = argparse.ArgumentParser(description="SSE Chat Client")
    parser.add_argument("--username", default="testuser", help="Username")
    parser.add_argument("--server", default="http://localhost:8000", help="Server URL")
    parser.add_argument("--test", choices=["1", "2", "3"], help="Run test scenario")

    args = parser.parse_args()

    if args.test == "1":
        await scenario_broadcast(args.server)
    elif args.test == "2":
        await scenario_validation(args.server)
    elif args.test == "3":
        await scenario_burst(args.server)
    else:
        await ChatClient(args.username, args.server).run_interactive()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Client error: {e}")
        sys.exit(1)
