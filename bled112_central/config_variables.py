"""Canonical list of config variables defined by bled112-central."""


def get_variables():
    prefix = "bled112"

    conf_vars = []
    conf_vars.append(["baud-rate", "int", "Serial baud rate used to talk to the adapter", 230400])
    conf_vars.append(["command-timeout", "float", "Seconds to wait for the response to a BGAPI command", 10.0])
    conf_vars.append(["procedure-timeout", "float", "Seconds to wait for a GATT procedure to complete before "
                                                    "assuming the adapter is unresponsive", 5.0])
    conf_vars.append(["connect-timeout", "float", "Seconds to wait for a connection to be established", 5.0])
    conf_vars.append(["liveness-interval", "float", "Seconds between liveness checks of discovered peripherals, "
                                                    "0 disables the background check", 2.0])
    conf_vars.append(["active-scan", "bool", "Send scan requests to receive scan response packets", "true"])
    conf_vars.append(["dispatch-workers", "int", "Number of threads used to deliver events and "
                                                  "characteristic callbacks, at least 2", 4])

    return prefix, conf_vars
