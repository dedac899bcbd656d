from threading import Thread, Event, current_thread
import logging
from serial import SerialException
from ..exceptions import TransportUnavailableError
from . import packets


class PacketReader:
    """Read BGAPI packets from a serial port in a background thread.

    Given an underlying file like object, synchronously read from it in a
    separate thread and pass each complete packet to callback, one at a
    time and always from the same thread.  If reading fails, callback is
    given a HardwareFailurePacket and the thread exits.
    """

    def __init__(self, filelike, callback, name="bgapi-reader"):
        self.file = filelike
        self.framer = packets.PacketFramer()
        self._stop = Event()

        self._thread = Thread(target=_reader_thread, name=name,
                              args=(filelike, self.framer, callback, self._stop))
        self._thread.daemon = True
        self._thread.start()

    def write(self, value):
        try:
            self.file.write(value)
        except SerialException as err:
            raise TransportUnavailableError("Error writing to bled112 serial port") from err

    @property
    def running(self):
        return self._thread.is_alive()

    def stop(self):
        self._stop.set()

        if hasattr(self.file, 'cancel_read'):
            self.file.cancel_read()

        # A failure callback can stop its own reader
        if current_thread() is not self._thread:
            self._thread.join()


def _reader_thread(filelike, framer, callback, stop):
    logger = logging.getLogger(__name__)

    while not stop.is_set():
        try:
            chunk = filelike.read(framer.bytes_needed())
            if stop.is_set():
                break

            if not chunk:
                continue

            for packet in framer.feed(chunk):
                logger.log(5, "BLED112 Packet: class=%d, cmd=%d, event=%s, payload_length=%d",
                           packet.class_, packet.cmd, packet.event, len(packet.payload))

                callback(packet)
        except Exception as err:  #pylint:disable=broad-except;We report every failure to our owner
            logger.debug("Error in reader thread, exiting", exc_info=True)
            callback(packets.HardwareFailurePacket(err))
            return
