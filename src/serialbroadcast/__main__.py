from serialbroadcast.broadcast import monitor

monitor()
