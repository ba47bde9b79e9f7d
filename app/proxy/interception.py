"""
Client-side interception script injected into proxied HTML.

The script reroutes requests issued at runtime (fetch, XHR, Image, dynamically
created elements, form submits) through the proxy endpoint. WebSocket
connections are only logged.

Strings, URL objects and Request objects follow the same rule: relative
references and absolute http(s) URLs on the page's own origin (the origin of
the injected <base>) are proxied; other origins, fragments and non-http
schemes are left alone.
"""

import json

from app.proxy.rewrite import HEAD_PATTERN

_ENDPOINT_PLACEHOLDER = "__PROXY_ENDPOINT__"

_SCRIPT_TEMPLATE = r"""
(function () {
  if (window.__proxyInterceptInstalled) return;
  window.__proxyInterceptInstalled = true;

  var PROXY_ENDPOINT = __PROXY_ENDPOINT__;
  var PROXY_PREFIX = PROXY_ENDPOINT + '?url=';
  var SKIP = /^(?:[a-z][a-z0-9+.-]*:|\/\/|#)/i;
  var NativeURL = window['URL'];
  var HOOKED_TAGS = ['script', 'link', 'img', 'iframe', 'video', 'audio', 'source', 'embed', 'object'];

  function logEvent(type, original, proxied) {
    try {
      console.debug('[proxy-intercept]', {
        type: type,
        url: original === undefined || original === null ? null : String(original),
        proxied: proxied === undefined || proxied === null ? null : String(proxied)
      });
    } catch (e) {}
  }

  function wrap(absolute) {
    return PROXY_PREFIX + encodeURIComponent(absolute);
  }

  // One policy for strings, URL and Request objects: relative references and
  // absolute http(s) URLs on the page's own origin go through the proxy
  function toProxiedUrl(value) {
    if (value === undefined || value === null) return value;
    try {
      var raw = String(value).trim();
      if (!raw || raw.indexOf(PROXY_PREFIX) === 0 || raw.charAt(0) === '#') return value;
      var target = new NativeURL(raw, document.baseURI);
      if (target.protocol !== 'http:' && target.protocol !== 'https:') return value;
      if (SKIP.test(raw) && target.origin !== new NativeURL(document.baseURI).origin) return value;
      return wrap(target.href);
    } catch (e) {
      return value;
    }
  }

  function hookProperty(element, prop) {
    var proto = Object.getPrototypeOf(element);
    var descriptor;
    while (proto && !(descriptor = Object.getOwnPropertyDescriptor(proto, prop))) {
      proto = Object.getPrototypeOf(proto);
    }
    if (!descriptor || !descriptor.set || !descriptor.get) return;
    Object.defineProperty(element, prop, {
      configurable: true,
      enumerable: descriptor.enumerable,
      get: function () {
        return descriptor.get.call(this);
      },
      set: function (value) {
        var proxied = toProxiedUrl(value);
        if (proxied !== value) logEvent('property:' + prop, value, proxied);
        descriptor.set.call(this, proxied);
      }
    });
  }

  function install(name, installer) {
    try {
      installer();
    } catch (e) {
      logEvent('install-failed:' + name, e && e.message);
    }
  }

  install('replaceChildren', function () {
    if (!Element.prototype.replaceChildren) {
      Element.prototype.replaceChildren = function () {
        while (this.firstChild) this.removeChild(this.firstChild);
        if (arguments.length) this.append.apply(this, arguments);
      };
    }
  });

  install('fetch', function () {
    var nativeFetch = window.fetch;
    if (typeof nativeFetch !== 'function') return;
    window.fetch = function (input, init) {
      var target = input;
      try {
        if (typeof Request !== 'undefined' && input instanceof Request) {
          var proxiedRequest = toProxiedUrl(input.url);
          if (proxiedRequest !== input.url) target = new Request(proxiedRequest, input);
        } else if (input instanceof NativeURL) {
          target = toProxiedUrl(input.href);
        } else {
          target = toProxiedUrl(input);
        }
        logEvent('fetch', input && input.url ? input.url : input, target && target.url ? target.url : target);
      } catch (e) {
        target = input;
      }
      return nativeFetch.call(this, target, init);
    };
  });

  install('xhr', function () {
    var nativeOpen = XMLHttpRequest.prototype.open;
    XMLHttpRequest.prototype.open = function (method, url) {
      var args = Array.prototype.slice.call(arguments);
      try {
        args[1] = toProxiedUrl(url instanceof NativeURL ? url.href : url);
        logEvent('xhr', url, args[1]);
      } catch (e) {
        args[1] = url;
      }
      return nativeOpen.apply(this, args);
    };
  });

  install('image', function () {
    var NativeImage = window.Image;
    if (typeof NativeImage !== 'function') return;
    var ProxiedImage = function (width, height) {
      var image;
      if (arguments.length > 1) image = new NativeImage(width, height);
      else if (arguments.length === 1) image = new NativeImage(width);
      else image = new NativeImage();
      try {
        hookProperty(image, 'src');
      } catch (e) {}
      return image;
    };
    ProxiedImage.prototype = NativeImage.prototype;
    window.Image = ProxiedImage;
  });

  install('createElement', function () {
    var nativeCreateElement = document.createElement;
    document.createElement = function (tagName) {
      var element = nativeCreateElement.apply(this, arguments);
      try {
        if (HOOKED_TAGS.indexOf(String(tagName).toLowerCase()) !== -1) {
          hookProperty(element, 'src');
          hookProperty(element, 'href');
        }
      } catch (e) {}
      return element;
    };
  });

  install('websocket', function () {
    var NativeWebSocket = window.WebSocket;
    if (typeof NativeWebSocket !== 'function') return;
    var LoggedWebSocket = function (url, protocols) {
      logEvent('websocket', url);
      return protocols === undefined ? new NativeWebSocket(url) : new NativeWebSocket(url, protocols);
    };
    LoggedWebSocket.prototype = NativeWebSocket.prototype;
    ['CONNECTING', 'OPEN', 'CLOSING', 'CLOSED'].forEach(function (key) {
      LoggedWebSocket[key] = NativeWebSocket[key];
    });
    window.WebSocket = LoggedWebSocket;
  });

  install('formSubmit', function () {
    var nativeSubmit = HTMLFormElement.prototype.submit;
    HTMLFormElement.prototype.submit = function () {
      try {
        var action = this.getAttribute('action');
        if (action) {
          var proxied = toProxiedUrl(action);
          if (proxied !== action) {
            this.setAttribute('action', proxied);
            logEvent('form', action, proxied);
          }
        }
      } catch (e) {}
      return nativeSubmit.apply(this, arguments);
    };
  });
})();
"""


def make_script(proxy_origin: str, proxy_path: str) -> str:
    """Build the interception script for one proxy endpoint."""
    endpoint = json.dumps(f"{proxy_origin}{proxy_path}").replace("</", "<\\/")
    return _SCRIPT_TEMPLATE.replace(_ENDPOINT_PLACEHOLDER, endpoint)


def inject_script(html: str, script: str) -> str:
    """Insert the script as the first child of <head>; documents without one are untouched."""
    tag = f'<script data-proxy-intercept="true">{script}</script>'
    return HEAD_PATTERN.sub(lambda m: m.group(0) + tag, html, count=1)
