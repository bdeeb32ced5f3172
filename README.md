# imchat

An asyncio websocket gateway for instant messaging. Clients connect over a
websocket and send JSON frames; the server routes data frames to handlers by
method name and can confirm each frame with an acknowledgement handshake.
Chat logs and per-user conversation lists are stored in MongoDB, and a Redis
registry lets several gateway nodes forward frames to the node a user is
connected to.

## Installation

```
pip install imchat
```

To run the test suite:

```
pip install "imchat[test]"
pytest
```

## Frames

Every frame on the wire is a JSON object built from `imchat.message.Message`:

| field          | meaning                                                          |
|----------------|------------------------------------------------------------------|
| `frameType`    | a `FrameType`: `DATA`, `PING`, `ACK`, `NO_ACK`, `ERR`, `TRANSPOND` |
| `id`           | message id, used for acknowledgements                            |
| `ackSeq`       | acknowledgement sequence number                                  |
| `method`       | route name for data frames                                       |
| `formId`       | sender of a pushed message                                       |
| `transpondUid` | target user when forwarded between nodes                         |
| `data`         | the payload                                                      |

```python
from imchat.message import Message, new_message, new_err_message

frame = new_message("user-1", {"hello": "world"})
text = frame.to_json()
assert Message.from_json(text).form_id == "user-1"

error = new_err_message(ValueError("bad input"))   # an ERR frame with data "bad input"
```

`Message.from_json` and `Message.from_dict` raise `ValueError` for input that
is not a frame (wrong field types, unknown frame type).

The payloads carried in `data` are described by `imchat.protocol`: `Msg`,
`Chat`, `Push` and `MarkRead`, each with `from_dict` and `to_dict`.

## Running a gateway

All network methods are coroutines.

```python
import asyncio

from imchat.handlers import online_routes
from imchat.options import AckType, ServerOptions
from imchat.server import Server

server = Server("0.0.0.0:1234", ServerOptions(ack=AckType.NO_ACK))
server.add_routes(online_routes())
asyncio.run(server.start())
```

`ServerOptions` holds:

- `authentication` – an `Authentication`; the default,
  `DefaultAuthentication`, accepts every connection and takes the user id
  from the `userId` query parameter (the values in brackets, e.g. `[alice]`),
  or the current time in milliseconds if there is none;
- `ack` – `AckType.NO_ACK`, `AckType.ONLY_ACK` or `AckType.RIGOR_ACK`;
- `ack_timeout` – seconds to wait for a client's confirmation (30);
- `pattern` – the websocket path (`/ws`);
- `max_connection_idle` – seconds after the last write before a connection
  that has not read since is closed (unlimited; non-positive values keep the
  default);
- `concurrency` – how many tasks `Server.schedule` runs at once (10);
- `discover` – a `Discover` backend; `NopDiscover` when unset.

Handlers are called as `handler(server, conn, msg)` and may be coroutines:

```python
from imchat.message import Route

async def echo(server, conn, msg):
    await server.send(msg, conn)

server.add_routes([Route(method="echo", handler=echo)])
```

A data frame whose method has no route gets a data frame back saying so; a
ping frame is answered with a ping. `await server.send_by_user_id(msg,
"alice", "bob")` delivers to the users that are connected, and
`server.get_users()` lists who is online. A user who connects again has the
previous connection closed. `imchat.handlers.online_routes()` provides the
`user.online` route, which answers with the list of connected users.

## Clients and discovery

`imchat.client.Client` dials `ws://<host><pattern>` with the `DialOptions`
headers, sends and reads JSON values, and redials once if a write fails:

```python
from imchat.client import Client
from imchat.options import DialOptions

client = Client("localhost:1234", DialOptions(header={"Authorization": "Bearer token"}))
await client.send({"frameType": 0, "method": "user.online"})
reply = await client.read()
await client.close()
```

With a `RedisDiscover`, each node records its address and the users it holds
in Redis; `transpond` wraps a frame as `TRANSPOND` and sends it to the node
holding each target user, raising `LookupError` for a user bound to no node.
`Server` calls `bound_user` for every new connection.

## Storage

`imchat.models` defines `ChatLog`, `Conversation` and `Conversations`, with
`to_document` / `from_document`. `imchat.chatlog_store.ChatLogModel` and
`imchat.conversation_store.ConversationModel` / `ConversationsModel` wrap
MongoDB collections; build them with `must_chat_log_model(url, db)`,
`must_conversation_model(url, db)` and `must_conversations_model(url, db)`
(collections `chat_log`, `conversation`, `conversations`). Lookups that find
nothing raise `NotFoundError`; malformed hex ids raise `InvalidObjectIdError`.

```python
from imchat.chatlog_store import must_chat_log_model

logs = must_chat_log_model("mongodb://localhost:27017", "chat")
recent = logs.list_by_send_time("conv-1", start_send_time=1_700_000_000_000,
                                end_send_time=0, limit=20)
```

`list_by_send_time` returns newest first, 100 logs when `limit` is not
positive.

## What it does not do

- There is no command-line entry point; a gateway is started from your own
  code as shown above.
- The only route supplied is `user.online`. The `Chat`, `Push` and `MarkRead`
  payloads are defined, but no handlers for sending chats, pushing them to
  recipients or marking them read come with the package, and nothing writes
  incoming frames to the storage models by itself.
- There is no HTTP API or RPC service over the stored conversations, and no
  message-queue integration.