from asyserve import logger
from asyserve._version import __version__
from asyserve.common.target import ServerTarget
from asyserve.common.connection import ServerConnection
from asyserve.protocol.http.messages import HTTPRequest, HTTPResponse
from asyserve.server import TCPServer
import asyncio
import datetime
import email.utils
import h11


def format_date_time(dt=None):
    """Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
    if dt is None:
        dt = datetime.datetime.now(datetime.timezone.utc)
    return email.utils.format_datetime(dt, usegmt=True)


class HTTPWrapper:
    def __init__(self, client_id, stream:ServerConnection):
        self.client_id = client_id
        self.stream = stream
        self.conn = h11.Connection(h11.SERVER)
        # Our Server: header
        self.ident = " ".join(
            [f"asyserve/{__version__}", h11.PRODUCT_ID]
        ).encode("ascii")

    async def send(self, event):
        # ConnectionClosed is never sent from here, data would be None for it
        assert type(event) is not h11.ConnectionClosed
        data = self.conn.send(event)
        try:
            await self.stream.write(data)
        except BaseException:
            # the connection is unusable after a failed write
            self.conn.send_failed()
            raise

    async def _read_from_peer(self):
        if self.conn.they_are_waiting_for_100_continue:
            logger.debug('[%s] Sending 100 Continue' % self.client_id)
            go_ahead = h11.InformationalResponse(
                status_code=100, headers=self.basic_headers()
            )
            await self.send(go_ahead)
        try:
            data = await self.stream.read_one()
        except (ConnectionError, OSError) as exc:
            logger.debug('[%s] Error reading from peer: %s' % (self.client_id, exc))
            # They've stopped listening. Not much we can do about it here.
            data = b""
        self.conn.receive_data(data)

    async def next_event(self):
        while True:
            event = self.conn.next_event()
            if event is h11.NEED_DATA:
                await self._read_from_peer()
                continue
            return event

    async def send_response(self, request:HTTPRequest, response:HTTPResponse):
        headers = self.basic_headers()
        for name, value in response.headers:
            headers.append((name.encode("ascii"), value.encode("ascii")))
        if response.content_length is not None and response.get_header("Content-Length") is None:
            headers.append((b"Content-Length", str(response.content_length).encode("ascii")))

        try:
            await self.send(h11.Response(status_code=response.status, headers=headers))
            if request is None or request.method != "HEAD":
                async for chunk in response.iter_body():
                    if chunk:
                        await self.send(h11.Data(data=chunk))
            await self.send(h11.EndOfMessage())
        finally:
            await response.close()

    async def maybe_send_error_response(self, status_code, message):
        # An error response can only go out if we haven't started one yet
        if self.conn.our_state not in {h11.IDLE, h11.SEND_RESPONSE}:
            return
        try:
            await self.send_response(None, HTTPResponse.text(status_code, message))
        except Exception as exc:
            logger.debug('[%s] Error while sending error response: %s' % (self.client_id, exc))

    async def shutdown_and_clean_up(self):
        try:
            await self.stream.close()
        except Exception as exc:
            logger.debug('[%s] Error closing connection: %s' % (self.client_id, exc))

    def basic_headers(self):
        # HTTP requires these headers in all responses
        return [
            (b"Date", format_date_time().encode("ascii")),
            (b"Server", self.ident),
        ]


class HTTPServerHandler:
    """
    Base request handler. Requests are dispatched to ``do_<METHOD>`` coroutines
    which return an HTTPResponse; sending it is done here.
    """
    def allowed_methods(self):
        return sorted(name[3:] for name in dir(self) if name.startswith("do_"))

    def method_not_allowed(self):
        response = HTTPResponse.text(405, "Method Not Allowed")
        response.headers.append(("Allow", ", ".join(self.allowed_methods())))
        return response

    async def _process_request(self, wrapper:HTTPWrapper, event:h11.Request):
        request = HTTPRequest.from_h11(event, wrapper, wrapper.stream.get_peer_str())
        func = getattr(self, f"do_{request.method}", None)
        if func is None:
            response = self.method_not_allowed()
        else:
            try:
                response = await func(request)
            except Exception:
                logger.exception('[%s] Error processing request %s' % (wrapper.client_id, request))
                response = HTTPResponse.text(500, "Internal Server Error")

        logger.info('%s "%s" %s' % (request.peer, request, response.status))
        await wrapper.send_response(request, response)
        return request


class HTTPServer:
    def __init__(self, client_handler, target:ServerTarget):
        self.target = target
        self.client_handler = client_handler

        self.clients = set()
        self.id_counter = 0
        self.__main_task = None
        self.tcpserver = TCPServer(self.target)
        self.started_evt = self.tcpserver.started_evt

    async def __aenter__(self):
        self.__main_task = asyncio.create_task(self.serve())
        started_task = asyncio.create_task(self.started_evt.wait())
        try:
            await asyncio.wait(
                [self.__main_task, started_task],
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            started_task.cancel()
        if self.__main_task.done():
            # raises the startup error
            self.__main_task.result()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.terminate()

    def get_listen_port(self):
        return self.tcpserver.get_listen_port()

    async def terminate(self):
        if self.__main_task is not None and not self.__main_task.done():
            self.__main_task.cancel()
            await asyncio.gather(self.__main_task, return_exceptions=True)
        for task in list(self.clients):
            task.cancel()
        if self.clients:
            await asyncio.gather(*self.clients, return_exceptions=True)
        self.clients.clear()
        await self.tcpserver.close()

    async def __handle_connection(self, connection:ServerConnection):
        client_id = self.id_counter
        self.id_counter += 1
        wrapper = HTTPWrapper(client_id, connection)
        handler = self.client_handler()
        logger.debug('[%s] New client connected from %s' % (client_id, connection.get_peer_str()))
        try:
            while True:
                if wrapper.conn.our_state is h11.MUST_CLOSE or wrapper.conn.their_state is h11.MUST_CLOSE:
                    break

                if wrapper.conn.states == {h11.CLIENT: h11.CLOSED, h11.SERVER: h11.CLOSED}:
                    break

                if wrapper.conn.states == {h11.CLIENT: h11.DONE, h11.SERVER: h11.DONE}:
                    wrapper.conn.start_next_cycle()
                    continue

                try:
                    event = await wrapper.next_event()
                except h11.RemoteProtocolError as exc:
                    logger.debug('[%s] Protocol error: %s' % (client_id, exc))
                    await wrapper.maybe_send_error_response(exc.error_status_hint, str(exc))
                    break

                if type(event) is h11.Request:
                    await handler._process_request(wrapper, event)
                    continue
                if type(event) is h11.ConnectionClosed:
                    break
                # remainder of a request body the handler did not read
                logger.debug('[%s] Discarding %s' % (client_id, type(event).__name__))

        except (ConnectionError, h11.LocalProtocolError) as exc:
            logger.debug('[%s] Connection error: %s' % (client_id, exc))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception('[%s] Error during connection handling' % client_id)
        finally:
            await wrapper.shutdown_and_clean_up()
            logger.debug('[%s] Client disconnected' % client_id)

    async def serve(self):
        async for connection in self.tcpserver.serve():
            task = asyncio.create_task(self.__handle_connection(connection))
            self.clients.add(task)
            task.add_done_callback(self.clients.discard)
