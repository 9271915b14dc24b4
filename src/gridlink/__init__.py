"""

Grid controller connections

- Transport: OSC over UDP. A Transmitter sends to one device, a Receiver listens on an
  ephemeral port and dispatches each message on its own thread.
- Discovery: a time-boxed request to serialosc. list_devices() asks the daemon for its
  devices, list_properties() asks a device for its /sys properties. Replies are published
  for one second, then the channel is closed. Devices can also be found through the
  zeroconf services serialosc advertises.
- Session: the channel to one device. Negotiates the reply host, port and address prefix,
  then folds the device's grid and encoder events into the state of a handler.
- Handler binding: supplied by the application per device id or name. Given a
  ConnectionInfo it returns a ConnectionClient, which owns the session state.
- DeviceConnections: opens a session for each discovered device with a binding, collects
  driver properties for each device, and shuts every session down together.


## Threading

Nothing here blocks the caller. Discovery replies, device events and property replies
each arrive on their own receiver thread. Events for one session are handled one at a
time in arrival order; there is no ordering between sessions.

Shared values (the connection registry, the shutdown list, each session's state) live in
Atoms and are replaced with compare-and-set, so no lock is held while handlers run.
A handler function may be re-run if another thread swapped the same state concurrently.
"""
